# tests/test_commands.py
"""
Tests for accounting commands.

Commands wrap the ledger in a transaction and report expected failures
through CommandResult instead of raising.
"""

from datetime import date
from decimal import Decimal

import pytest

from accounting import commands
from accounting.models import AccountingEntry, AccountingLine, SubAccountMonthlyBalance


def _sale_lines(amount="121.00"):
    return [
        {"sub_account_code": "5720000001", "concept": "Invoice 17", "debit": Decimal(amount)},
        {"sub_account_code": "7000000000", "concept": "Invoice 17", "credit": Decimal(amount)},
    ]


# =============================================================================
# Entries
# =============================================================================

@pytest.mark.django_db
class TestCreateEntry:

    def test_posts_all_lines(self, bank, revenue):
        result = commands.create_entry(
            date="2024-03-01",
            concept="Invoice 17",
            lines=_sale_lines(),
        )

        assert result.success, result.error
        entry = result.data
        assert entry.date == date(2024, 3, 1)
        assert entry.is_balanced
        assert list(entry.lines.values_list("order", flat=True)) == [1, 2]

        bank.refresh_from_db()
        revenue.refresh_from_db()
        assert bank.balance == Decimal("121.00")
        assert revenue.balance == Decimal("-121.00")

    def test_numbers_entries_sequentially(self, bank, revenue):
        first = commands.create_entry(date="2024-03-01", lines=_sale_lines())
        second = commands.create_entry(date="2024-03-02", lines=_sale_lines("10.00"))

        assert first.data.number == 1
        assert second.data.number == 2

    def test_explicit_number_is_kept(self, bank, revenue):
        result = commands.create_entry(date="2024-03-01", number=40, lines=_sale_lines())

        assert result.data.number == 40

    def test_invalid_line_rolls_back_whole_entry(self, bank, revenue):
        lines = _sale_lines()
        lines[1]["credit"] = Decimal("0")

        result = commands.create_entry(date="2024-03-01", lines=lines)

        assert not result.success
        assert result.error.startswith("Line 2:")
        assert "cannot both be zero" in result.error
        assert not AccountingEntry.objects.exists()
        assert not AccountingLine.objects.exists()
        assert not SubAccountMonthlyBalance.objects.exists()
        bank.refresh_from_db()
        assert bank.balance == Decimal("0.00")

    def test_unknown_sub_account_code(self, bank):
        result = commands.create_entry(
            date="2024-03-01",
            lines=[{"sub_account_code": "9999", "concept": "Ghost", "debit": Decimal("5")}],
        )

        assert not result.success
        assert result.error == "Line 1: Sub-account 9999 not found."
        assert not AccountingEntry.objects.exists()

    def test_invalid_date(self, bank, revenue):
        result = commands.create_entry(date="2024-13-01", lines=_sale_lines())

        assert not result.success
        assert result.error.startswith("Invalid date:")
        assert not AccountingEntry.objects.exists()

    def test_field_errors_are_named(self, bank):
        result = commands.create_entry(
            date="2024-03-01",
            lines=[{"sub_account_code": "5720000001", "concept": "", "debit": Decimal("5")}],
        )

        assert not result.success
        assert "concept:" in result.error


@pytest.mark.django_db
class TestDeleteEntry:

    def test_removes_lines_and_contributions(self, bank, revenue):
        entry = commands.create_entry(date="2024-03-01", lines=_sale_lines()).data

        result = commands.delete_entry(entry.pk)

        assert result.success
        assert result.data == {"deleted": True, "lines": 2}
        bank.refresh_from_db()
        revenue.refresh_from_db()
        assert bank.balance == Decimal("0.00")
        assert revenue.balance == Decimal("0.00")

    def test_missing_entry(self, db):
        result = commands.delete_entry(424242)

        assert not result.success
        assert result.error == "Accounting entry not found."


@pytest.mark.django_db
class TestChangeEntryDate:

    def test_moves_monthly_balances(self, bank, revenue):
        entry = commands.create_entry(date="2024-03-01", lines=_sale_lines()).data

        result = commands.change_entry_date(entry.pk, "2024-04-10")

        assert result.success
        assert result.data.date == date(2024, 4, 10)
        march = SubAccountMonthlyBalance.objects.get(sub_account=bank, year=2024, month=3)
        april = SubAccountMonthlyBalance.objects.get(sub_account=bank, year=2024, month=4)
        assert march.balance == Decimal("0.00")
        assert april.balance == Decimal("121.00")

    def test_invalid_date(self, bank, revenue):
        entry = commands.create_entry(date="2024-03-01", lines=_sale_lines()).data

        result = commands.change_entry_date(entry.pk, "not-a-date")

        assert not result.success
        assert result.error.startswith("Invalid date:")
        entry.refresh_from_db()
        assert entry.date == date(2024, 3, 1)

    def test_missing_entry(self, db):
        result = commands.change_entry_date(424242, "2024-04-10")

        assert result.error == "Accounting entry not found."


# =============================================================================
# Lines
# =============================================================================

@pytest.mark.django_db
class TestLineCommands:

    def test_add_line(self, entry, bank):
        result = commands.add_line(
            entry.pk,
            sub_account_code="5720000001",
            concept="Deposit",
            debit=Decimal("30.00"),
        )

        assert result.success, result.error
        assert result.data.order == 1
        assert result.data.sub_account_code == bank.code
        bank.refresh_from_db()
        assert bank.balance == Decimal("30.00")

    def test_add_line_to_missing_entry(self, bank):
        result = commands.add_line(424242, sub_account=bank, concept="Deposit", debit=Decimal("1"))

        assert result.error == "Accounting entry not found."

    def test_add_invalid_line(self, entry, bank):
        result = commands.add_line(entry.pk, sub_account=bank, concept="Nothing")

        assert not result.success
        assert result.error == "Debit and credit cannot both be zero."
        assert not AccountingLine.objects.exists()

    def test_update_line_reports_change(self, entry, bank):
        line = commands.add_line(entry.pk, sub_account=bank, concept="Deposit", debit=Decimal("30.00")).data

        result = commands.update_line(line.pk, debit=Decimal("45.00"))

        assert result.success, result.error
        assert result.data["change"].balance_delta == Decimal("15.00")
        bank.refresh_from_db()
        assert bank.balance == Decimal("45.00")

    def test_update_line_to_other_code(self, entry, bank, revenue):
        line = commands.add_line(entry.pk, sub_account=bank, concept="Deposit", debit=Decimal("30.00")).data

        result = commands.update_line(line.pk, sub_account_code="7000000000")

        assert result.success, result.error
        bank.refresh_from_db()
        revenue.refresh_from_db()
        assert bank.balance == Decimal("0.00")
        assert revenue.balance == Decimal("30.00")

    def test_invalid_update_keeps_balance(self, entry, bank):
        line = commands.add_line(entry.pk, sub_account=bank, concept="Deposit", debit=Decimal("30.00")).data

        result = commands.update_line(line.pk, debit=Decimal("-1"))

        assert not result.success
        assert result.error.startswith("debit:")
        bank.refresh_from_db()
        assert bank.balance == Decimal("30.00")

    def test_delete_line(self, entry, bank):
        line = commands.add_line(entry.pk, sub_account=bank, concept="Deposit", debit=Decimal("30.00")).data

        result = commands.delete_line(line.pk)

        assert result.success
        bank.refresh_from_db()
        assert bank.balance == Decimal("0.00")

    @pytest.mark.parametrize("command", [commands.update_line, commands.delete_line])
    def test_missing_line(self, command, db):
        result = command(424242)

        assert not result.success
        assert result.error == "Accounting line not found."
