from decimal import Decimal

from django.db import migrations, models
import django.db.models.deletion

import accounting.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="AccountingEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("number", models.PositiveIntegerField()),
                ("date", models.DateField()),
                ("concept", models.CharField(blank=True, default="", max_length=255)),
                ("document", models.CharField(blank=True, default="", max_length=50)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["date", "number"],
                "indexes": [
                    models.Index(fields=["date"], name="accounting_entry_date_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SubAccount",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=15, unique=True)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("debit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("credit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["code"],
            },
        ),
        migrations.CreateModel(
            name="SubAccountMonthlyBalance",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("year", models.PositiveSmallIntegerField()),
                ("month", models.PositiveSmallIntegerField()),
                ("debit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("credit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("sub_account", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="monthly_balances", to="accounting.subaccount")),
            ],
            options={
                "ordering": ["sub_account", "year", "month"],
                "constraints": [
                    models.UniqueConstraint(fields=("sub_account", "year", "month"), name="uniq_sub_account_month"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AccountingLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sub_account_code", models.CharField(blank=True, default="", max_length=15)),
                ("concept", models.CharField(max_length=255)),
                ("document", models.CharField(blank=True, default="", max_length=50)),
                ("invoice", models.CharField(blank=True, default="", max_length=50)),
                ("series_code", models.CharField(blank=True, default="", max_length=4)),
                ("tax_id", models.CharField(blank=True, default="", max_length=30)),
                ("debit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("credit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("currency", models.CharField(default=accounting.models.default_currency, max_length=3)),
                ("debit_foreign", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("credit_foreign", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("conversion_rate", models.DecimalField(decimal_places=6, default=Decimal("1"), max_digits=18)),
                ("counterpart_code", models.CharField(blank=True, default="", max_length=15)),
                ("tax_base", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("vat", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5)),
                ("surcharge", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5)),
                ("order", models.PositiveIntegerField(default=0)),
                ("reconciled", models.BooleanField(default=False)),
                ("counterpart", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="counterpart_lines", to="accounting.subaccount")),
                ("entry", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="lines", to="accounting.accountingentry")),
                ("sub_account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="lines", to="accounting.subaccount")),
            ],
            options={
                "ordering": ["entry", "order", "id"],
                "indexes": [
                    models.Index(fields=["sub_account", "entry"], name="accounting_line_sub_entry_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("debit", 0), ("credit", 0), _negated=True), name="chk_accounting_line_not_both_zero"),
                    models.CheckConstraint(condition=models.Q(("debit__gte", 0), ("credit__gte", 0)), name="chk_accounting_line_non_negative"),
                ],
            },
        ),
    ]
