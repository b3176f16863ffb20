# tests/conftest.py
"""
Pytest fixtures for ledger tests.

Sub-account fixtures:
- cash: opening balance 500.00 (no lines behind it)
- bank, revenue: empty, so their stored totals must always equal their lines
"""

import pytest
from decimal import Decimal
from datetime import date

from accounting.models import AccountingEntry, AccountingLine, SubAccount


# =============================================================================
# Entry Fixtures
# =============================================================================

@pytest.fixture
def entry(db):
    """Entry dated March 2024."""
    return AccountingEntry.objects.create(
        number=1,
        date=date(2024, 3, 15),
        concept="Cash sales",
    )


@pytest.fixture
def may_entry(db):
    """Second entry, dated in a different month."""
    return AccountingEntry.objects.create(
        number=2,
        date=date(2024, 5, 2),
        concept="Bank transfer",
    )


# =============================================================================
# Sub-account Fixtures
# =============================================================================

@pytest.fixture
def cash(db):
    """Cash sub-account with an opening balance of 500."""
    return SubAccount.objects.create(
        code="5700000001",
        description="Cash",
        balance=Decimal("500.00"),
    )


@pytest.fixture
def bank(db):
    return SubAccount.objects.create(code="5720000001", description="Bank")


@pytest.fixture
def revenue(db):
    return SubAccount.objects.create(code="7000000000", description="Sales revenue")


# =============================================================================
# Line Factory
# =============================================================================

@pytest.fixture
def make_line(entry, cash):
    """
    Build an unsaved AccountingLine.

    Defaults to a 100.00 debit on cash in the March entry.
    """
    def _make(**overrides):
        fields = {
            "entry": entry,
            "sub_account": cash,
            "concept": "Cash sale",
            "debit": Decimal("100.00"),
            "credit": Decimal("0.00"),
        }
        fields.update(overrides)
        return AccountingLine(**fields)

    return _make
