# tests/test_validation.py
"""
Tests for accounting line validation and free-text sanitization.
"""

from decimal import Decimal

import pytest
from django.core.exceptions import NON_FIELD_ERRORS, ValidationError

from accounting.ledger import ledger, to_amount
from accounting.models import AccountingLine
from accounting.sanitize import clean_code, no_html


@pytest.mark.django_db
class TestConceptLength:

    @pytest.mark.parametrize("length", [1, 255])
    def test_accepted_lengths(self, length, cash, make_line):
        line = ledger.insert(make_line(concept="x" * length))

        line.refresh_from_db()
        assert len(line.concept) == length
        cash.refresh_from_db()
        assert cash.balance == Decimal("600.00")

    @pytest.mark.parametrize("length", [0, 256])
    def test_rejected_lengths(self, length, cash, make_line):
        with pytest.raises(ValidationError) as exc_info:
            ledger.insert(make_line(concept="x" * length))

        assert "concept" in exc_info.value.message_dict
        assert not AccountingLine.objects.exists()
        cash.refresh_from_db()
        assert cash.balance == Decimal("500.00")

    def test_whitespace_only_concept_is_empty(self, make_line):
        with pytest.raises(ValidationError) as exc_info:
            ledger.validate(make_line(concept="   "))

        assert "concept" in exc_info.value.message_dict

    def test_length_is_measured_after_escaping(self, make_line):
        # 64 "<" become 64 "&lt;" = 256 characters
        with pytest.raises(ValidationError) as exc_info:
            ledger.validate(make_line(concept="<" * 64))

        assert "concept" in exc_info.value.message_dict

    def test_non_string_concept_is_converted(self, make_line):
        line = make_line(concept=12345)

        ledger.validate(line)

        assert line.concept == "12345"

    def test_concept_is_escaped(self, make_line):
        line = make_line(concept="  <b>Invoice</b> 'A'  ")

        ledger.validate(line)

        assert line.concept == "&lt;b&gt;Invoice&lt;/b&gt; &#39;A&#39;"


@pytest.mark.django_db
class TestAmounts:

    def test_both_zero_is_rejected(self, cash, make_line):
        with pytest.raises(ValidationError) as exc_info:
            ledger.insert(make_line(debit=0, credit=0))

        assert exc_info.value.message_dict[NON_FIELD_ERRORS] == [
            "Debit and credit cannot both be zero."
        ]
        assert not AccountingLine.objects.exists()
        cash.refresh_from_db()
        assert cash.balance == Decimal("500.00")

    def test_negative_amount_is_rejected(self, make_line):
        with pytest.raises(ValidationError) as exc_info:
            ledger.validate(make_line(debit=Decimal("-5.00")))

        assert "debit" in exc_info.value.message_dict

    def test_unparseable_amount_is_rejected(self, make_line):
        with pytest.raises(ValidationError) as exc_info:
            ledger.validate(make_line(credit="abc"))

        assert "credit" in exc_info.value.message_dict

    def test_amount_beyond_column_precision_is_rejected(self, cash, make_line):
        with pytest.raises(ValidationError) as exc_info:
            ledger.insert(make_line(debit=Decimal("99999999999999999999")))

        assert "debit" in exc_info.value.message_dict
        assert not AccountingLine.objects.exists()
        cash.refresh_from_db()
        assert cash.balance == Decimal("500.00")

    def test_largest_amount_fits_the_column(self, make_line):
        line = make_line(debit=Decimal("9999999999999999.99"))

        ledger.validate(line)

        assert line.debit == Decimal("9999999999999999.99")

    def test_amounts_are_rounded_to_cents(self, make_line):
        line = make_line(debit="12.345")

        ledger.validate(line)

        assert line.debit == Decimal("12.35")

    def test_to_amount_treats_blank_as_zero(self):
        assert to_amount(None) == Decimal("0.00")
        assert to_amount("") == Decimal("0.00")
        assert to_amount(7) == Decimal("7.00")


@pytest.mark.django_db
class TestReferences:

    def test_missing_entry(self, cash):
        line = AccountingLine(sub_account=cash, concept="No entry", debit=Decimal("1"))

        with pytest.raises(ValidationError) as exc_info:
            ledger.validate(line)

        assert "entry" in exc_info.value.message_dict

    def test_missing_sub_account(self, entry):
        line = AccountingLine(entry=entry, concept="No sub-account", debit=Decimal("1"))

        with pytest.raises(ValidationError) as exc_info:
            ledger.validate(line)

        assert "sub_account" in exc_info.value.message_dict

    def test_errors_are_collected_together(self):
        line = AccountingLine(concept="", debit=0, credit=0)

        with pytest.raises(ValidationError) as exc_info:
            ledger.validate(line)

        assert set(exc_info.value.message_dict) == {
            "concept", "entry", "sub_account", NON_FIELD_ERRORS,
        }

    def test_codes_are_trimmed(self, make_line):
        line = make_line(counterpart_code="  4300000001 ")

        ledger.validate(line)

        assert line.counterpart_code == "4300000001"


class TestSanitize:

    def test_no_html_keeps_ampersands(self):
        assert no_html("Smith & Sons") == "Smith & Sons"

    def test_no_html_escapes_quotes(self):
        assert no_html('say "hi"') == "say &quot;hi&quot;"

    def test_no_html_passes_none_through(self):
        assert no_html(None) is None

    def test_no_html_converts_non_strings(self):
        assert no_html(42) == "42"

    def test_clean_code(self):
        assert clean_code(None) == ""
        assert clean_code(" 570 ") == "570"
