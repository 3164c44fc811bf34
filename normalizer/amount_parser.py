"""
Amount parser for balance text scraped from loyalty, wallet and exchange pages.

Handles:
- Russian/European format: "1 234,56 ₽", "1.234,56"
- International format: "1,234.56", "$1,234.56"
- Non-breaking and narrow non-breaking spaces used as grouping
- Negative formats: -1000, −1000 (Unicode minus), (1000)
- Rounding policies: exact, round to N places, truncate to whole units
"""
import re
import unicodedata
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, List, Union


class NoNumericContent(ValueError):
    """Raised when a text holds no digit sequence that can be read as an amount."""


# Textual currency markers that are not Unicode currency symbols
_CURRENCY_WORDS = re.compile(
    r'(RUB|USDT|USD|EUR|INR|руб\.?|р\.|Rs\.?)',
    flags=re.IGNORECASE,
)

# A leading separator counts (".5"), unless it ends a word ("Points.5")
_NUMBER_TOKEN = re.compile(r'([+-]?)(\d[\d.,]*|(?<![^\W\d_])[.,]\d[\d.,]*)')

_MINUS_SIGNS = ('−', '‒', '–')


@dataclass(frozen=True)
class RoundingPolicy:
    """
    How a balance is brought to the precision the site displays.

    mode is one of "exact", "round" or "truncate". "round" uses places
    decimal digits (half-up); "truncate" drops the fraction toward zero.
    """
    mode: str = "exact"
    places: int = 0

    @classmethod
    def exact(cls) -> "RoundingPolicy":
        return cls("exact")

    @classmethod
    def round_to(cls, places: int) -> "RoundingPolicy":
        if places < 0:
            raise ValueError(f"places must be >= 0, got {places}")
        return cls("round", places)

    @classmethod
    def truncate(cls) -> "RoundingPolicy":
        return cls("truncate")

    @classmethod
    def parse(cls, value: Any) -> "RoundingPolicy":
        """
        Build a policy from a config value.

        Accepts None/"exact", "truncate", "round:2", an int (places) or a
        mapping like {"mode": "round", "places": 4}.
        """
        if value is None or isinstance(value, RoundingPolicy):
            return value or cls.exact()
        if isinstance(value, bool):
            raise ValueError(f"Invalid rounding policy: {value!r}")
        if isinstance(value, int):
            return cls.round_to(value)
        if isinstance(value, dict):
            mode = str(value.get("mode", "exact")).lower()
            if mode == "round":
                return cls.round_to(int(value.get("places", 0)))
            return cls.parse(mode)

        text = str(value).strip().lower()
        if text in ("", "exact"):
            return cls.exact()
        if text in ("truncate", "trunc"):
            return cls.truncate()
        if text.startswith("round"):
            _, _, places = text.partition(":")
            try:
                return cls.round_to(int(places or 0))
            except ValueError:
                pass
        raise ValueError(f"Invalid rounding policy: {value!r}")

    def apply(self, value: Decimal) -> Decimal:
        """Apply the policy to an already parsed value."""
        if self.mode == "truncate":
            return value.to_integral_value(rounding=ROUND_DOWN)
        if self.mode == "round":
            return value.quantize(Decimal(1).scaleb(-self.places), rounding=ROUND_HALF_UP)
        return value

    def __str__(self) -> str:
        if self.mode == "round":
            return f"round:{self.places}"
        return self.mode


def normalize(
    value: Union[str, int, float, Decimal, None],
    policy: RoundingPolicy = RoundingPolicy(),
) -> Decimal:
    """
    Parse a balance text into a canonical Decimal.

    Args:
        value: Text scraped from a page or API response (or a number)
        policy: Rounding policy declared for the tracked balance

    Returns:
        The parsed value with the policy applied

    Raises:
        NoNumericContent: If the text contains no digits
    """
    if value is None:
        raise NoNumericContent("No value to parse")

    if isinstance(value, bool):
        raise NoNumericContent(f"Not an amount: {value!r}")

    if isinstance(value, Decimal):
        if not value.is_finite():
            raise NoNumericContent(f"Not a finite amount: {value!r}")
        return policy.apply(value)

    if isinstance(value, (int, float)):
        # str() keeps the shortest repr, so 0.1 stays 0.1 rather than its binary expansion
        return normalize(Decimal(str(value)), policy)

    cleaned = _clean(str(value))

    is_negative = False
    # Accounting format: (1,000.00) means negative
    if cleaned.startswith('(') and cleaned.endswith(')'):
        is_negative = True
        cleaned = cleaned[1:-1]

    match = _NUMBER_TOKEN.search(cleaned)
    if not match:
        raise NoNumericContent(f"No numeric content in {value!r}")

    sign, digits = match.groups()
    if sign == '-':
        is_negative = True

    amount = _to_decimal(digits, original=value)
    if is_negative:
        amount = -amount

    return policy.apply(amount)


def render(value: Decimal) -> str:
    """Render a normalized value as plain text (no grouping, '.' decimal point)."""
    return format(value, 'f')


def find_amounts(text: str) -> List[Decimal]:
    """
    Find every amount in a free-form text such as ledger output.

    Tokens are separated by whitespace, so grouping by spaces is not
    supported here; use normalize() for a single scraped value.
    """
    amounts = []
    for chunk in _replace_minus_signs(text).split():
        match = _NUMBER_TOKEN.search(_strip_currency(chunk))
        if not match:
            continue
        sign, digits = match.groups()
        try:
            amount = _to_decimal(digits, original=chunk)
        except NoNumericContent:
            continue
        amounts.append(-amount if sign == '-' else amount)
    return amounts


def has_valid_amount(value: Union[str, int, float, Decimal, None]) -> bool:
    """
    Check if a value contains a parseable amount.

    Args:
        value: A value to check

    Returns:
        True if normalize() would succeed, False otherwise
    """
    try:
        normalize(value)
        return True
    except NoNumericContent:
        return False


def _clean(value_str: str) -> str:
    """Remove whitespace (including NBSP) and currency markers."""
    value_str = _replace_minus_signs(value_str)
    value_str = ''.join(ch for ch in value_str if not ch.isspace())
    return _strip_currency(value_str)


def _replace_minus_signs(value_str: str) -> str:
    for minus in _MINUS_SIGNS:
        value_str = value_str.replace(minus, '-')
    return value_str


def _strip_currency(value_str: str) -> str:
    value_str = ''.join(ch for ch in value_str if unicodedata.category(ch) != 'Sc')
    return _CURRENCY_WORDS.sub('', value_str)


def _to_decimal(digits: str, original: Any) -> Decimal:
    """
    Resolve grouping/decimal separators and convert to Decimal.

    If both '.' and ',' appear, the rightmost one is the decimal separator.
    A lone ',' is a decimal separator; any separator repeated more than
    once can only be grouping. A leading separator means a zero integer
    part.
    """
    digits = digits.rstrip('.,')
    if digits[:1] in ('.', ','):
        digits = '0' + digits

    has_dot = '.' in digits
    has_comma = ',' in digits

    if has_dot and has_comma:
        if digits.rfind(',') > digits.rfind('.'):
            digits = digits.replace('.', '').replace(',', '.')
        else:
            digits = digits.replace(',', '')
    elif has_comma:
        if digits.count(',') == 1:
            digits = digits.replace(',', '.')
        else:
            digits = digits.replace(',', '')
    elif digits.count('.') > 1:
        digits = digits.replace('.', '')

    try:
        amount = Decimal(digits)
    except InvalidOperation:
        raise NoNumericContent(f"Cannot parse amount from {original!r}")

    if not amount.is_finite():
        raise NoNumericContent(f"Not a finite amount: {original!r}")
    return amount
