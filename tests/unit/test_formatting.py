import pytest
from datetime import date
from decimal import Decimal

from finance_tracker.utils.formatting import describe_due, format_currency, format_date

@pytest.mark.unit
@pytest.mark.parametrize("value, expected", [
    (Decimal("0"), "R$ 0,00"),
    (Decimal("1234.56"), "R$ 1.234,56"),
    (Decimal("1234567.8"), "R$ 1.234.567,80"),
    (Decimal("0.005"), "R$ 0,01"),
    (Decimal("-10"), "-R$ 10,00"),
])
def test_format_currency(value, expected):
    assert format_currency(value) == expected

@pytest.mark.unit
def test_format_currency_with_other_symbol():
    assert format_currency(Decimal("5"), symbol="US$") == "US$ 5,00"

@pytest.mark.unit
def test_format_date():
    assert format_date(date(2024, 3, 7)) == "07/03/2024"

@pytest.mark.unit
@pytest.mark.parametrize("days, expected", [
    (-3, "Vencido há 3 dias"),
    (-1, "Vencido há 1 dia"),
    (0, "Vence hoje"),
    (1, "Vence em 1 dia"),
    (10, "Vence em 10 dias"),
])
def test_describe_due(days, expected):
    assert describe_due(days) == expected
