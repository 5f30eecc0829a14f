# src/parsers/price_parser.py

"""Turn scraped price text into a currency symbol and a Decimal.

Prices on the web come in both thousands conventions: ``1,234.56``
(English) and ``1.234,56`` (most of Europe).  When both separators
appear, whichever comes last is the decimal point.  A lone comma is a
decimal comma only when it is followed by exactly two digits
(``99,99``); anything else (``1,234``) is read as thousands grouping.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

CURRENCY_SYMBOLS: frozenset[str] = frozenset(
    "£$€¥₹₩₽₺₪₫฿₱₦₴"
)

_NON_NUMERIC_RE = re.compile(r"[^0-9,.]")


@dataclass(frozen=True)
class ParsedPrice:
    """Structured result of parsing one piece of price text."""

    currency: str | None
    price: Decimal | None
    raw: str

    @property
    def ok(self) -> bool:
        """True when a usable price was extracted."""
        return self.price is not None


def detect_currency(text: str) -> str | None:
    """Return the first recognised currency symbol in *text*."""
    for char in text:
        if char in CURRENCY_SYMBOLS:
            return char
    return None


def normalize_number(cleaned: str) -> str:
    """Rewrite a digits/comma/period string into ``Decimal`` syntax."""
    has_comma = "," in cleaned
    has_dot = "." in cleaned

    if has_comma and has_dot:
        split_at = max(cleaned.rfind(","), cleaned.rfind("."))
        integer = re.sub(r"[,.]", "", cleaned[:split_at])
        return f"{integer}.{cleaned[split_at + 1:]}"

    if has_comma:
        groups = cleaned.split(",")
        if len(groups) == 2 and len(groups[1]) == 2:
            return f"{groups[0]}.{groups[1]}"
        return cleaned.replace(",", "")

    return cleaned


def parse_price(raw_text: str | None) -> ParsedPrice:
    """Parse scraped text like ``'£1.234,56'`` into a :class:`ParsedPrice`.

    Never raises: text without a usable number yields ``price=None``.
    """
    raw = (raw_text or "").strip()
    currency = detect_currency(raw)
    cleaned = _NON_NUMERIC_RE.sub("", raw)

    if not cleaned:
        return ParsedPrice(currency=currency, price=None, raw=raw)

    try:
        value = Decimal(normalize_number(cleaned))
    except InvalidOperation:
        return ParsedPrice(currency=currency, price=None, raw=raw)

    if not value.is_finite():
        return ParsedPrice(currency=currency, price=None, raw=raw)
    return ParsedPrice(currency=currency, price=value, raw=raw)
