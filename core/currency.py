from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

# ISO 4217 currencies whose minor unit is not the usual hundredth.
ZERO_DECIMAL_CURRENCIES: frozenset[str] = frozenset(
    {
        "BIF",
        "CLP",
        "CVE",
        "DJF",
        "GNF",
        "IDR",
        "ISK",
        "JPY",
        "KMF",
        "KRW",
        "PYG",
        "RWF",
        "UGX",
        "VND",
        "VUV",
        "XAF",
        "XOF",
        "XPF",
    }
)

THREE_DECIMAL_CURRENCIES: frozenset[str] = frozenset(
    {
        "BHD",
        "IQD",
        "JOD",
        "KWD",
        "LYD",
        "OMR",
        "TND",
    }
)

DEFAULT_CURRENCY_EXPONENT = 2


def _normalize_currency(currency_code: str) -> str:
    normalized = (currency_code or "").strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError(f"Invalid ISO 4217 currency code: {currency_code!r}")
    return normalized


def currency_exponent(currency_code: str) -> int:
    code = _normalize_currency(currency_code)
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return DEFAULT_CURRENCY_EXPONENT


def get_smallest_unit(amount: Decimal | int | float | str, currency_code: str) -> int:
    """Convert a major-unit amount (e.g. ``10.5`` EUR) into minor units (``1050``)."""
    exponent = currency_exponent(currency_code)
    value = Decimal(str(amount)).scaleb(exponent)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def get_amount_from_smallest_unit(value: int, currency_code: str) -> Decimal:
    exponent = currency_exponent(currency_code)
    return Decimal(int(value)).scaleb(-exponent)
