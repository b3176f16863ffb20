# accounting/ledger.py
"""
Accounting line ledger.

The ledger owns every write to AccountingLine and every change to a
sub-account's debit, credit and balance. It keeps one invariant:

    SubAccount.balance == sum(line.debit - line.credit) over its lines

Balances are maintained incrementally. Each line mutation computes the
delta it causes and hands it to apply_delta(), the only code that touches
SubAccount totals. Line write and balance write happen inside the same
transaction.atomic() block, so a failed adjustment rolls the line back too.

Mutation events:
- insert: +debit, +credit at the entry date
- update: (new - old) for debit and credit, from an explicit AmountChange
- delete: -debit, -credit of the stored row

Callers invoke each operation exactly once per change. The ledger does not
de-duplicate, so replaying an update applies its delta again.

Usage:
    from accounting.ledger import ledger

    line = AccountingLine(entry=entry, sub_account=cash, concept="Sale", debit=100)
    ledger.insert(line)
    ledger.update(line, debit=Decimal("40"))
    ledger.delete(line)
"""

import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from django.core.exceptions import NON_FIELD_ERRORS, FieldDoesNotExist, ValidationError
from django.db import transaction
from django.db.models import DecimalField, Sum, Value
from django.db.models.functions import Coalesce, ExtractMonth, ExtractYear

from accounting.exceptions import ReferenceResolutionError
from accounting.models import (
    AccountingEntry,
    AccountingLine,
    SubAccount,
    SubAccountMonthlyBalance,
)
from accounting.sanitize import clean_code, no_html
from accounting.write_barrier import ledger_writes_allowed


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
MIN_CONCEPT_LENGTH = 1
MAX_CONCEPT_LENGTH = 255
AMOUNT_FIELDS = ("debit", "credit", "debit_foreign", "credit_foreign", "tax_base")


def to_amount(value) -> Decimal:
    """Coerce a monetary value to a two-decimal Decimal."""
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc


def to_date(value) -> datetime.date:
    if isinstance(value, str):
        return datetime.date.fromisoformat(value)
    if isinstance(value, datetime.datetime):
        return value.date()
    return value


@dataclass(frozen=True)
class AmountChange:
    """Debit/credit of a line before and after an update."""

    old_debit: Decimal
    old_credit: Decimal
    new_debit: Decimal
    new_credit: Decimal

    @property
    def debit_delta(self) -> Decimal:
        return self.new_debit - self.old_debit

    @property
    def credit_delta(self) -> Decimal:
        return self.new_credit - self.old_credit

    @property
    def balance_delta(self) -> Decimal:
        return self.debit_delta - self.credit_delta

    @property
    def is_empty(self) -> bool:
        return self.debit_delta == 0 and self.credit_delta == 0


class AccountingLineLedger:
    """Keeps SubAccount balances consistent with the lines posted to them."""

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, line: AccountingLine) -> None:
        """
        Sanitize a line's free text and check it can be posted.

        Raises:
            ValidationError: with a message dict keyed by field name
        """
        line.concept = no_html(line.concept) or ""
        line.document = no_html(line.document) or ""
        line.tax_id = no_html(line.tax_id) or ""
        line.sub_account_code = clean_code(line.sub_account_code)
        line.counterpart_code = clean_code(line.counterpart_code)

        errors: Dict[str, List[str]] = {}

        if not MIN_CONCEPT_LENGTH <= len(line.concept) <= MAX_CONCEPT_LENGTH:
            errors.setdefault("concept", []).append(
                f"Concept must be between {MIN_CONCEPT_LENGTH} and "
                f"{MAX_CONCEPT_LENGTH} characters."
            )

        if line.entry_id is None:
            errors.setdefault("entry", []).append("Accounting entry is required.")

        if line.sub_account_id is None:
            errors.setdefault("sub_account", []).append("Sub-account is required.")

        for field in AMOUNT_FIELDS:
            try:
                value = to_amount(getattr(line, field))
            except ValidationError as exc:
                errors.setdefault(field, []).extend(exc.messages)
                continue
            setattr(line, field, value)

            column = AccountingLine._meta.get_field(field)
            integer_digits = column.max_digits - column.decimal_places
            if abs(value) >= Decimal(10) ** integer_digits:
                errors.setdefault(field, []).append(
                    f"{field.capitalize()} cannot have more than {integer_digits} "
                    f"digits before the decimal point."
                )

        for field in ("debit", "credit"):
            if field not in errors and getattr(line, field) < 0:
                errors.setdefault(field, []).append(f"{field.capitalize()} cannot be negative.")

        if "debit" not in errors and "credit" not in errors:
            if line.debit == 0 and line.credit == 0:
                errors.setdefault(NON_FIELD_ERRORS, []).append(
                    "Debit and credit cannot both be zero."
                )

        if errors:
            logger.warning(
                "Accounting line rejected",
                extra={"line_id": line.pk, "errors": errors},
            )
            raise ValidationError(errors)

    # ------------------------------------------------------------------
    # Balance adjustment
    # ------------------------------------------------------------------

    def apply_delta(self, sub_account_id, debit_delta, credit_delta, date) -> SubAccount:
        """
        Move a sub-account's totals by the given debit and credit deltas.

        The sub-account row is re-loaded under select_for_update() on every
        call, and the monthly row for `date` is moved by the same amounts.

        Raises:
            ReferenceResolutionError: if the sub-account does not exist
        """
        debit_delta = to_amount(debit_delta)
        credit_delta = to_amount(credit_delta)
        date = to_date(date)

        with transaction.atomic():
            try:
                sub_account = SubAccount.objects.select_for_update().get(pk=sub_account_id)
            except SubAccount.DoesNotExist:
                logger.error(
                    "Sub-account not found while applying balance delta",
                    extra={"sub_account_id": sub_account_id},
                )
                raise ReferenceResolutionError("SubAccount", sub_account_id) from None

            sub_account.debit += debit_delta
            sub_account.credit += credit_delta
            sub_account.balance += debit_delta - credit_delta
            sub_account.save(update_fields=["debit", "credit", "balance", "updated_at"])

            self._apply_monthly(sub_account, debit_delta, credit_delta, date)

        logger.debug(
            f"Updated balance for {sub_account.code}: "
            f"debit={debit_delta}, credit={credit_delta}, new_balance={sub_account.balance}"
        )
        return sub_account

    def _apply_monthly(self, sub_account, debit_delta, credit_delta, date) -> None:
        try:
            monthly = SubAccountMonthlyBalance.objects.select_for_update().get(
                sub_account=sub_account,
                year=date.year,
                month=date.month,
            )
        except SubAccountMonthlyBalance.DoesNotExist:
            monthly = SubAccountMonthlyBalance(
                sub_account=sub_account,
                year=date.year,
                month=date.month,
            )

        monthly.debit += debit_delta
        monthly.credit += credit_delta
        monthly.balance += debit_delta - credit_delta
        monthly.save()

    # ------------------------------------------------------------------
    # Reference resolution
    # ------------------------------------------------------------------

    def _resolve_entry(self, entry_id) -> AccountingEntry:
        try:
            return AccountingEntry.objects.get(pk=entry_id)
        except AccountingEntry.DoesNotExist:
            logger.error("Accounting entry not found", extra={"entry_id": entry_id})
            raise ReferenceResolutionError("AccountingEntry", entry_id) from None

    def _resolve_sub_account(self, sub_account_id) -> SubAccount:
        try:
            return SubAccount.objects.get(pk=sub_account_id)
        except SubAccount.DoesNotExist:
            logger.error("Sub-account not found", extra={"sub_account_id": sub_account_id})
            raise ReferenceResolutionError("SubAccount", sub_account_id) from None

    def _load_stored_line(self, line: AccountingLine) -> AccountingLine:
        if line.pk is None:
            raise ValueError("Line has not been inserted yet.")
        try:
            return AccountingLine.objects.select_for_update().get(pk=line.pk)
        except AccountingLine.DoesNotExist:
            raise ReferenceResolutionError("AccountingLine", line.pk) from None

    def _fill_codes(
        self,
        line: AccountingLine,
        sub_account: SubAccount,
        stored: Optional[AccountingLine] = None,
    ) -> None:
        """
        Copy account codes onto the line from the accounts it points at.

        A counterpart code given without a counterpart account is kept, unless
        the line had a counterpart account that has now been cleared.
        """
        line.sub_account_code = sub_account.code
        if line.counterpart_id is not None:
            line.counterpart_code = self._resolve_sub_account(line.counterpart_id).code
        elif stored is not None and stored.counterpart_id is not None:
            line.counterpart_code = ""

    # ------------------------------------------------------------------
    # Line lifecycle
    # ------------------------------------------------------------------

    def insert(self, line: AccountingLine) -> AccountingLine:
        """
        Persist a new line and add its debit/credit to its sub-account.

        Raises:
            ValidationError: the line cannot be posted; nothing is written
            ReferenceResolutionError: entry or sub-account missing; nothing is written
        """
        if line.pk is not None:
            raise ValueError("Line is already persisted; use update().")

        self.validate(line)

        with transaction.atomic(), ledger_writes_allowed():
            entry = self._resolve_entry(line.entry_id)
            sub_account = self._resolve_sub_account(line.sub_account_id)
            self._fill_codes(line, sub_account)

            line.save(force_insert=True)
            self.apply_delta(sub_account.pk, line.debit, line.credit, entry.date)

        logger.info(
            "Accounting line inserted",
            extra={
                "line_id": line.pk,
                "entry_id": entry.pk,
                "sub_account": sub_account.code,
                "debit": str(line.debit),
                "credit": str(line.credit),
            },
        )
        return line

    def update(self, line: AccountingLine, **changes: Any) -> AmountChange:
        """
        Apply field changes to a persisted line and adjust balances.

        The stored row is the "before" side of the AmountChange; the line
        after applying `changes` is the "after" side. Moving a line to a
        different sub-account or entry removes its old contribution and adds
        the new one.

        Returns:
            The AmountChange that was applied
        """
        for field in changes:
            try:
                AccountingLine._meta.get_field(field)
            except FieldDoesNotExist:
                raise ValueError(f"AccountingLine has no field {field!r}.") from None

        for field, value in changes.items():
            setattr(line, field, value)

        self.validate(line)

        with transaction.atomic(), ledger_writes_allowed():
            stored = self._load_stored_line(line)
            change = AmountChange(
                old_debit=stored.debit,
                old_credit=stored.credit,
                new_debit=line.debit,
                new_credit=line.credit,
            )

            entry = self._resolve_entry(line.entry_id)
            sub_account = self._resolve_sub_account(line.sub_account_id)
            self._fill_codes(line, sub_account, stored)

            moved = (
                stored.sub_account_id != line.sub_account_id
                or stored.entry_id != line.entry_id
            )
            old_entry = self._resolve_entry(stored.entry_id) if moved else entry

            line.save()

            if moved:
                self.apply_delta(stored.sub_account_id, -stored.debit, -stored.credit, old_entry.date)
                self.apply_delta(sub_account.pk, line.debit, line.credit, entry.date)
            elif not change.is_empty:
                self.apply_delta(sub_account.pk, change.debit_delta, change.credit_delta, entry.date)

        logger.info(
            "Accounting line updated",
            extra={
                "line_id": line.pk,
                "sub_account": sub_account.code,
                "debit_delta": str(change.debit_delta),
                "credit_delta": str(change.credit_delta),
                "moved": moved,
            },
        )
        return change

    def delete(self, line: AccountingLine) -> None:
        """
        Remove a line's contribution from its sub-account, then delete it.

        The contribution removed is the one of the stored row, not of any
        unsaved edits on `line`.
        """
        with transaction.atomic(), ledger_writes_allowed():
            stored = self._load_stored_line(line)
            entry = self._resolve_entry(stored.entry_id)
            self.apply_delta(stored.sub_account_id, -stored.debit, -stored.credit, entry.date)
            line_id = line.pk
            line.delete()

        logger.info(
            "Accounting line deleted",
            extra={
                "line_id": line_id,
                "sub_account": stored.sub_account_code,
                "debit": str(stored.debit),
                "credit": str(stored.credit),
            },
        )

    # ------------------------------------------------------------------
    # Entry lifecycle
    # ------------------------------------------------------------------

    def delete_entry(self, entry: AccountingEntry) -> int:
        """
        Delete every line of an entry through delete(), then the entry.

        Returns:
            Number of lines deleted
        """
        with transaction.atomic(), ledger_writes_allowed():
            lines = list(
                AccountingLine.objects.select_for_update().filter(entry_id=entry.pk)
            )
            for line in lines:
                self.delete(line)
            entry.delete()

        logger.info(
            "Accounting entry deleted",
            extra={"entry_number": entry.number, "lines": len(lines)},
        )
        return len(lines)

    def change_entry_date(self, entry: AccountingEntry, new_date) -> AccountingEntry:
        """
        Re-date an entry, moving its lines' movements between months.

        Running balances are unchanged; only monthly rows move.
        """
        new_date = to_date(new_date)

        with transaction.atomic(), ledger_writes_allowed():
            try:
                stored = AccountingEntry.objects.select_for_update().get(pk=entry.pk)
            except AccountingEntry.DoesNotExist:
                raise ReferenceResolutionError("AccountingEntry", entry.pk) from None

            old_date = stored.date
            entry.date = new_date
            entry.save(update_fields=["date", "updated_at"])

            if (old_date.year, old_date.month) != (new_date.year, new_date.month):
                for line in stored.lines.all():
                    self._move_month(line, old_date, new_date)

        logger.info(
            "Accounting entry re-dated",
            extra={
                "entry_id": entry.pk,
                "old_date": old_date.isoformat(),
                "new_date": new_date.isoformat(),
            },
        )
        return entry

    def _move_month(self, line: AccountingLine, old_date, new_date) -> None:
        self.apply_delta(line.sub_account_id, -line.debit, -line.credit, old_date)
        self.apply_delta(line.sub_account_id, line.debit, line.credit, new_date)

    # ------------------------------------------------------------------
    # Audit / rebuild
    # ------------------------------------------------------------------

    def _expected_totals(self, sub_accounts):
        amount = DecimalField(max_digits=18, decimal_places=2)
        return sub_accounts.annotate(
            line_debit=Coalesce(Sum("lines__debit"), Value(ZERO), output_field=amount),
            line_credit=Coalesce(Sum("lines__credit"), Value(ZERO), output_field=amount),
        )

    def _expected_monthly(self, sub_accounts) -> Dict[tuple, Dict[str, Decimal]]:
        rows = (
            AccountingLine.objects.filter(sub_account__in=sub_accounts)
            .annotate(
                year=ExtractYear("entry__date"),
                month=ExtractMonth("entry__date"),
            )
            .order_by()
            .values("sub_account_id", "year", "month")
            .annotate(debit_sum=Sum("debit"), credit_sum=Sum("credit"))
        )
        return {
            (row["sub_account_id"], row["year"], row["month"]): {
                "debit": to_amount(row["debit_sum"]),
                "credit": to_amount(row["credit_sum"]),
            }
            for row in rows
        }

    def audit(self, code: Optional[str] = None) -> Dict[str, Any]:
        """
        Compare stored balances against the lines actually persisted.

        Drift can only come from writes that bypassed the ledger; it is
        reported here, never corrected on the write path.

        Returns:
            {
                "sub_accounts": 3,
                "verified": 2,
                "mismatches": [
                    {"code": "5700000001", "period": None,
                     "stored_debit": "...", "stored_credit": "...", "stored_balance": "...",
                     "expected_debit": "...", "expected_credit": "...", "expected_balance": "..."},
                ],
            }
        """
        sub_accounts = SubAccount.objects.all()
        if code:
            sub_accounts = sub_accounts.filter(code=code)

        mismatches = []
        verified = 0
        total = 0

        for sub_account in self._expected_totals(sub_accounts):
            total += 1
            expected_debit = to_amount(sub_account.line_debit)
            expected_credit = to_amount(sub_account.line_credit)
            expected_balance = expected_debit - expected_credit

            if (sub_account.debit != expected_debit
                    or sub_account.credit != expected_credit
                    or sub_account.balance != expected_balance):
                mismatches.append(_mismatch(
                    sub_account.code, None,
                    (sub_account.debit, sub_account.credit, sub_account.balance),
                    (expected_debit, expected_credit, expected_balance),
                ))
            else:
                verified += 1

        codes = dict(sub_accounts.values_list("pk", "code"))
        expected_monthly = self._expected_monthly(sub_accounts)
        stored_monthly = {
            (row.sub_account_id, row.year, row.month): row
            for row in SubAccountMonthlyBalance.objects.filter(sub_account__in=sub_accounts)
        }
        for key in sorted(set(expected_monthly) | set(stored_monthly)):
            expected = expected_monthly.get(key, {"debit": ZERO, "credit": ZERO})
            stored = stored_monthly.get(key)
            stored_values = (
                (stored.debit, stored.credit, stored.balance) if stored else (ZERO, ZERO, ZERO)
            )
            expected_values = (
                expected["debit"],
                expected["credit"],
                expected["debit"] - expected["credit"],
            )
            if stored_values != expected_values:
                sub_account_id, year, month = key
                mismatches.append(_mismatch(
                    codes[sub_account_id], f"{year}-{month:02d}",
                    stored_values, expected_values,
                ))

        return {
            "sub_accounts": total,
            "verified": verified,
            "mismatches": mismatches,
        }

    def rebuild(self, code: Optional[str] = None) -> int:
        """
        Recompute sub-account totals and monthly rows from persisted lines.

        Returns:
            Number of sub-accounts rebuilt
        """
        sub_accounts = SubAccount.objects.all()
        if code:
            sub_accounts = sub_accounts.filter(code=code)

        with transaction.atomic():
            # FOR UPDATE cannot be combined with the aggregate below
            list(sub_accounts.select_for_update().values_list("pk", flat=True))

            rebuilt = 0
            for sub_account in self._expected_totals(sub_accounts):
                sub_account.debit = to_amount(sub_account.line_debit)
                sub_account.credit = to_amount(sub_account.line_credit)
                sub_account.balance = sub_account.debit - sub_account.credit
                sub_account.save(update_fields=["debit", "credit", "balance", "updated_at"])
                rebuilt += 1

            SubAccountMonthlyBalance.objects.filter(sub_account__in=sub_accounts).delete()
            SubAccountMonthlyBalance.objects.bulk_create([
                SubAccountMonthlyBalance(
                    sub_account_id=sub_account_id,
                    year=year,
                    month=month,
                    debit=totals["debit"],
                    credit=totals["credit"],
                    balance=totals["debit"] - totals["credit"],
                )
                for (sub_account_id, year, month), totals in
                self._expected_monthly(sub_accounts).items()
            ])

        logger.warning("Sub-account balances rebuilt from lines", extra={"sub_accounts": rebuilt})
        return rebuilt


def _mismatch(code, period, stored, expected) -> Dict[str, Any]:
    return {
        "code": code,
        "period": period,
        "stored_debit": str(stored[0]),
        "stored_credit": str(stored[1]),
        "stored_balance": str(stored[2]),
        "expected_debit": str(expected[0]),
        "expected_credit": str(expected[1]),
        "expected_balance": str(expected[2]),
    }


ledger = AccountingLineLedger()
