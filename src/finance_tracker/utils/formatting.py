from datetime import date
from decimal import Decimal, ROUND_HALF_UP

def format_currency(value: Decimal, symbol: str = "R$") -> str:
    """
    Format an amount the Brazilian way: R$ 1.234,56

    Negative values get a leading minus: -R$ 10,00
    """
    quantized = Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    text = f"{abs(quantized):,.2f}"
    # Swap separators: 1,234.56 -> 1.234,56
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    sign = "-" if quantized < 0 else ""
    return f"{sign}{symbol} {text}"

def format_date(value: date) -> str:
    """dd/mm/yyyy"""
    return value.strftime("%d/%m/%Y")

def describe_due(days: int) -> str:
    """Human text for the number of days until a due date"""
    if days < 0:
        n = abs(days)
        return f"Vencido há {n} dia{'s' if n != 1 else ''}"
    if days == 0:
        return "Vence hoje"
    return f"Vence em {days} dia{'s' if days != 1 else ''}"
