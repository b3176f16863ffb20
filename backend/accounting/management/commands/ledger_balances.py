# accounting/management/commands/ledger_balances.py
"""
Management command to audit and rebuild sub-account balances.

Stored balances are maintained incrementally by the ledger. This command
recomputes them from the persisted lines and reports any drift.

Usage:
    # Report mismatches for every sub-account
    python manage.py ledger_balances

    # Only one sub-account
    python manage.py ledger_balances --account 5700000001

    # Machine-readable report
    python manage.py ledger_balances --json

    # Rewrite totals and monthly balances from the lines
    python manage.py ledger_balances --rebuild
"""

import json
import logging

from django.core.management.base import BaseCommand, CommandError

from accounting.ledger import ledger
from accounting.models import SubAccount

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Audit sub-account balances against their accounting lines."""

    help = "Verify (and optionally rebuild) sub-account balances from accounting lines"

    def add_arguments(self, parser):
        parser.add_argument(
            "--account",
            type=str,
            help="Sub-account code to check",
        )
        parser.add_argument(
            "--rebuild",
            action="store_true",
            help="Rewrite stored balances from the lines when they drift",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            dest="as_json",
            help="Print the report as JSON",
        )

    def handle(self, *args, **options):
        code = options["account"]
        if code and not SubAccount.objects.filter(code=code).exists():
            raise CommandError(f"Sub-account {code} not found.")

        report = ledger.audit(code=code)

        if report["mismatches"] and options["rebuild"]:
            rebuilt = ledger.rebuild(code=code)
            report["rebuilt"] = rebuilt
            report["after_rebuild"] = ledger.audit(code=code)

        if options["as_json"]:
            self.stdout.write(json.dumps(report, indent=2))
        else:
            self._print_report(report)

        remaining = report.get("after_rebuild", report)["mismatches"]
        if remaining:
            logger.error(
                "Sub-account balances out of sync",
                extra={"mismatches": len(remaining)},
            )
            raise CommandError(f"{len(remaining)} balance mismatch(es) found.")

    def _print_report(self, report):
        self.stdout.write(
            f"Checked {report['sub_accounts']} sub-account(s), "
            f"{report['verified']} verified."
        )
        for mismatch in report["mismatches"]:
            period = mismatch["period"] or "total"
            self.stdout.write(self.style.WARNING(
                f"  {mismatch['code']} [{period}] "
                f"stored {mismatch['stored_debit']}/{mismatch['stored_credit']} "
                f"(balance {mismatch['stored_balance']}), "
                f"expected {mismatch['expected_debit']}/{mismatch['expected_credit']} "
                f"(balance {mismatch['expected_balance']})"
            ))

        if "rebuilt" in report:
            self.stdout.write(self.style.SUCCESS(
                f"Rebuilt {report['rebuilt']} sub-account(s); "
                f"{len(report['after_rebuild']['mismatches'])} mismatch(es) remain."
            ))
        elif not report["mismatches"]:
            self.stdout.write(self.style.SUCCESS("All balances match their lines."))
