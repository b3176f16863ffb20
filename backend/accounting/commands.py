# accounting/commands.py
"""
Command layer for accounting operations.

Commands are what request handlers call. They look up the rows involved,
delegate every line mutation to accounting.ledger and turn expected
failures into a CommandResult.

Pattern:
1. Load the target rows (fail if missing)
2. Perform the operation through the ledger
3. Return CommandResult

Validation and reference failures become CommandResult.fail(); database
errors propagate unchanged. Each command runs in one transaction and rolls
it back on failure, so a half-posted entry never persists.
"""

import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Max

from accounting.exceptions import ReferenceResolutionError
from accounting.ledger import ledger, to_date
from accounting.models import AccountingEntry, AccountingLine, SubAccount


logger = logging.getLogger(__name__)


class CommandResult:
    """
    Wrapper for command results with success/failure info.

    Usage:
        result = create_entry(date="2024-03-01", concept="Sale", lines=[...])
        if result.success:
            entry = result.data
        else:
            error_message = result.error
    """

    def __init__(self, success: bool, data=None, error: str = None):
        self.success = success
        self.data = data
        self.error = error

    @classmethod
    def ok(cls, data=None):
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str):
        return cls(success=False, error=error)

    def __repr__(self):
        if self.success:
            return f"CommandResult(ok, data={self.data!r})"
        return f"CommandResult(fail, error={self.error!r})"


def _error_message(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        if hasattr(exc, "error_dict"):
            return "; ".join(
                f"{field}: {message}" if field != "__all__" else message
                for field, messages in exc.message_dict.items()
                for message in messages
            )
        return "; ".join(exc.messages)
    return str(exc)


def _rollback_fail(error: str) -> CommandResult:
    transaction.set_rollback(True)
    logger.warning("Accounting command failed", extra={"error": error})
    return CommandResult.fail(error)


def _next_entry_number() -> int:
    current = AccountingEntry.objects.aggregate(last=Max("number"))["last"]
    return (current or 0) + 1


def _resolve_sub_account_code(data: dict) -> str | None:
    """
    Replace a "sub_account_code" key with the matching SubAccount.

    Returns an error message when the code does not exist.
    """
    code = data.pop("sub_account_code", None)
    if code is None or "sub_account" in data or "sub_account_id" in data:
        return None
    sub_account = SubAccount.objects.filter(code=code.strip()).first()
    if sub_account is None:
        return f"Sub-account {code} not found."
    data["sub_account"] = sub_account
    return None


# =============================================================================
# Entry Commands
# =============================================================================

@transaction.atomic
def create_entry(
    date,
    concept: str = "",
    lines: list = None,
    number: int = None,
    document: str = "",
) -> CommandResult:
    """
    Create an entry and post its lines.

    Args:
        date: Posting date
        concept: Entry description
        lines: List of dicts with AccountingLine fields; "sub_account_code"
               may be given instead of "sub_account"/"sub_account_id"
        number: Entry number (next free number when omitted)
        document: Source document reference

    Returns:
        CommandResult with the created AccountingEntry or error
    """
    try:
        date = to_date(date)
    except ValueError as exc:
        return _rollback_fail(f"Invalid date: {exc}")

    entry = AccountingEntry.objects.create(
        number=number or _next_entry_number(),
        date=date,
        concept=concept,
        document=document,
    )

    for idx, line_data in enumerate(lines or [], start=1):
        data = dict(line_data)
        error = _resolve_sub_account_code(data)
        if error:
            return _rollback_fail(f"Line {idx}: {error}")

        data.setdefault("order", idx)
        line = AccountingLine(entry=entry, **data)
        try:
            ledger.insert(line)
        except (ValidationError, ReferenceResolutionError) as exc:
            return _rollback_fail(f"Line {idx}: {_error_message(exc)}")

    logger.info(
        "Accounting entry created",
        extra={"entry_id": entry.pk, "entry_number": entry.number, "lines": len(lines or [])},
    )
    return CommandResult.ok(entry)


@transaction.atomic
def delete_entry(entry_id: int) -> CommandResult:
    """Delete an entry and remove all its lines' contributions."""
    try:
        entry = AccountingEntry.objects.select_for_update().get(pk=entry_id)
    except AccountingEntry.DoesNotExist:
        return CommandResult.fail("Accounting entry not found.")

    deleted = ledger.delete_entry(entry)
    return CommandResult.ok({"deleted": True, "lines": deleted})


@transaction.atomic
def change_entry_date(entry_id: int, date) -> CommandResult:
    """Re-date an entry; monthly balances follow its lines."""
    try:
        entry = AccountingEntry.objects.get(pk=entry_id)
    except AccountingEntry.DoesNotExist:
        return CommandResult.fail("Accounting entry not found.")

    try:
        entry = ledger.change_entry_date(entry, date)
    except ValueError as exc:
        return _rollback_fail(f"Invalid date: {exc}")
    return CommandResult.ok(entry)


# =============================================================================
# Line Commands
# =============================================================================

@transaction.atomic
def add_line(entry_id: int, **fields) -> CommandResult:
    """Post one more line to an existing entry."""
    try:
        entry = AccountingEntry.objects.get(pk=entry_id)
    except AccountingEntry.DoesNotExist:
        return CommandResult.fail("Accounting entry not found.")

    error = _resolve_sub_account_code(fields)
    if error:
        return _rollback_fail(error)

    if "order" not in fields:
        fields["order"] = entry.lines.count() + 1

    line = AccountingLine(entry=entry, **fields)
    try:
        ledger.insert(line)
    except (ValidationError, ReferenceResolutionError) as exc:
        return _rollback_fail(_error_message(exc))
    return CommandResult.ok(line)


@transaction.atomic
def update_line(line_id: int, **changes) -> CommandResult:
    """
    Edit a line.

    Returns:
        CommandResult whose data is {"line": line, "change": AmountChange}
    """
    try:
        line = AccountingLine.objects.get(pk=line_id)
    except AccountingLine.DoesNotExist:
        return CommandResult.fail("Accounting line not found.")

    error = _resolve_sub_account_code(changes)
    if error:
        return _rollback_fail(error)

    try:
        change = ledger.update(line, **changes)
    except (ValidationError, ReferenceResolutionError) as exc:
        return _rollback_fail(_error_message(exc))
    return CommandResult.ok({"line": line, "change": change})


@transaction.atomic
def delete_line(line_id: int) -> CommandResult:
    """Delete a line and remove its contribution from its sub-account."""
    try:
        line = AccountingLine.objects.get(pk=line_id)
    except AccountingLine.DoesNotExist:
        return CommandResult.fail("Accounting line not found.")

    try:
        ledger.delete(line)
    except ReferenceResolutionError as exc:
        return _rollback_fail(_error_message(exc))
    return CommandResult.ok({"deleted": True})
