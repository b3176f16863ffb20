# accounting/models.py
"""
Accounting models.

Models:
- AccountingEntry: journal entry header, dated
- SubAccount: ledger account with cumulative debit, credit and balance
- SubAccountMonthlyBalance: debit/credit movement of a sub-account per month
- AccountingLine: one debit/credit movement against a sub-account

AccountingLine is a guarded model. Inserting, changing or deleting a line
moves the referenced sub-account's balance, so all line writes go through
accounting.ledger, which does both in one transaction. Direct saves and
deletes raise RuntimeError outside ledger_writes_allowed().
"""

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q, Sum

from accounting.write_barrier import write_context_allowed


LEDGER_CONTEXTS = {"ledger"}


def default_currency() -> str:
    return settings.DEFAULT_CURRENCY


def _require_ledger_context(model_name: str, action: str) -> None:
    if not write_context_allowed(LEDGER_CONTEXTS):
        raise RuntimeError(
            f"{model_name} {action} must go through accounting.ledger. "
            f"Direct {action}s are only allowed within ledger_writes_allowed()."
        )


class LedgerWriteQuerySet(models.QuerySet):
    """
    QuerySet whose bulk writes are refused outside the ledger.

    Bulk operations skip save()/delete(), and with them the balance
    adjustment of every affected line.
    """

    def update(self, **kwargs):
        _require_ledger_context(self.model.__name__, "update")
        return super().update(**kwargs)

    def delete(self):
        _require_ledger_context(self.model.__name__, "delete")
        return super().delete()

    def bulk_create(self, objs, *args, **kwargs):
        _require_ledger_context(self.model.__name__, "bulk_create")
        return super().bulk_create(objs, *args, **kwargs)

    def bulk_update(self, objs, fields, *args, **kwargs):
        _require_ledger_context(self.model.__name__, "bulk_update")
        return super().bulk_update(objs, fields, *args, **kwargs)


class AccountingEntry(models.Model):
    """
    Journal entry ("asiento").

    The entry date dates every balance movement of its lines, so changing it
    on a saved entry goes through ledger.change_entry_date().
    """

    number = models.PositiveIntegerField()
    date = models.DateField()
    concept = models.CharField(max_length=255, blank=True, default="")
    document = models.CharField(max_length=50, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["date", "number"]
        indexes = [
            models.Index(fields=["date"], name="accounting_entry_date_idx"),
        ]

    def __str__(self):
        return f"Entry #{self.number} ({self.date})"

    def save(self, *args, **kwargs):
        if self.pk is not None and not write_context_allowed(LEDGER_CONTEXTS):
            stored_date = (
                type(self).objects.filter(pk=self.pk)
                .values_list("date", flat=True)
                .first()
            )
            if stored_date is not None and stored_date != self.date:
                _require_ledger_context(type(self).__name__, "date change")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        _require_ledger_context(type(self).__name__, "delete")
        return super().delete(*args, **kwargs)

    @property
    def total_debit(self) -> Decimal:
        return self.lines.aggregate(total=Sum("debit"))["total"] or Decimal("0.00")

    @property
    def total_credit(self) -> Decimal:
        return self.lines.aggregate(total=Sum("credit"))["total"] or Decimal("0.00")

    @property
    def is_balanced(self) -> bool:
        """True when the entry's debits equal its credits."""
        return self.total_debit == self.total_credit


class SubAccount(models.Model):
    """
    Ledger sub-account ("subcuenta").

    debit and credit accumulate every posted line; balance is debit - credit.
    Only AccountingLineLedger.apply_delta() moves these three fields.
    """

    code = models.CharField(max_length=15, unique=True)
    description = models.CharField(max_length=255, blank=True, default="")

    debit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    balance = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} - {self.description}"


class SubAccountMonthlyBalance(models.Model):
    """Debit, credit and net movement of a sub-account in one calendar month."""

    sub_account = models.ForeignKey(
        SubAccount,
        on_delete=models.CASCADE,
        related_name="monthly_balances",
    )
    year = models.PositiveSmallIntegerField()
    month = models.PositiveSmallIntegerField()

    debit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    balance = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["sub_account", "year", "month"]
        constraints = [
            models.UniqueConstraint(
                fields=["sub_account", "year", "month"],
                name="uniq_sub_account_month",
            ),
        ]

    def __str__(self):
        return f"{self.sub_account_id} {self.year}-{self.month:02d}: {self.balance}"


class AccountingLine(models.Model):
    """
    One debit or credit movement ("partida") of an entry against a sub-account.

    reconciled marks the line as matched against a bank statement; it has no
    effect on balances.
    """

    objects = LedgerWriteQuerySet.as_manager()

    entry = models.ForeignKey(
        AccountingEntry,
        on_delete=models.PROTECT,
        related_name="lines",
    )
    sub_account = models.ForeignKey(
        SubAccount,
        on_delete=models.PROTECT,
        related_name="lines",
    )
    sub_account_code = models.CharField(max_length=15, blank=True, default="")

    concept = models.CharField(max_length=255)
    document = models.CharField(max_length=50, blank=True, default="")
    invoice = models.CharField(max_length=50, blank=True, default="")
    series_code = models.CharField(max_length=4, blank=True, default="")
    tax_id = models.CharField(max_length=30, blank=True, default="")

    debit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Amounts in the line's own currency
    currency = models.CharField(max_length=3, default=default_currency)
    debit_foreign = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit_foreign = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    conversion_rate = models.DecimalField(max_digits=18, decimal_places=6, default=Decimal("1"))

    counterpart = models.ForeignKey(
        SubAccount,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="counterpart_lines",
    )
    counterpart_code = models.CharField(max_length=15, blank=True, default="")

    tax_base = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    vat = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    surcharge = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))

    order = models.PositiveIntegerField(default=0)
    reconciled = models.BooleanField(default=False)

    class Meta:
        ordering = ["entry", "order", "id"]
        constraints = [
            models.CheckConstraint(
                condition=~(Q(debit=0) & Q(credit=0)),
                name="chk_accounting_line_not_both_zero",
            ),
            models.CheckConstraint(
                condition=Q(debit__gte=0) & Q(credit__gte=0),
                name="chk_accounting_line_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["sub_account", "entry"], name="accounting_line_sub_entry_idx"),
        ]

    def __str__(self):
        return f"Entry#{self.entry_id} {self.sub_account_code} D{self.debit} C{self.credit}"

    def save(self, *args, **kwargs):
        _require_ledger_context(type(self).__name__, "save")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        _require_ledger_context(type(self).__name__, "delete")
        return super().delete(*args, **kwargs)

    @property
    def net_amount(self) -> Decimal:
        """The line's contribution to its sub-account balance."""
        return self.debit - self.credit
