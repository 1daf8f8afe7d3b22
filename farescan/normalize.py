import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from farescan.config import (
    CURRENCY_MERGE_BAND,
    CURRENCY_MERGE_OFFSET,
    EMISSIONS_CEILING,
    EMISSIONS_UNIT,
    MIN_TICKET_LENGTH,
    MISSING_DECIMAL_THRESHOLD,
    TWO_DIGIT_YEAR_PIVOT,
)

logger = logging.getLogger(__name__)


# ================== TEXT ==================
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\u2028|\u2029|\x0b|\x0c|\x85")
_BAR_RE = re.compile(r"[|\u00a6]")
_DASH_RE = re.compile(r"[\u2012\u2013\u2014\u2015\u2212]")
_HSPACE_RUN_RE = re.compile(r"[^\S\n]{2,}")
_CONTINUATION_INDENT_RE = re.compile(r"\n[^\S\n]+")


def normalize_text(text: Optional[str]) -> str:
    """Canonicalize recognizer output; line order is never changed."""
    if not text:
        return ""
    text = _LINE_BREAK_RE.sub("\n", text)
    text = _BAR_RE.sub(" ", text)
    text = text.replace(";", ":")
    text = _DASH_RE.sub("-", text)
    text = _HSPACE_RUN_RE.sub(" ", text)
    text = _CONTINUATION_INDENT_RE.sub("\n", text)
    return text.strip()


def split_lines(text: str) -> list[str]:
    out = []
    for line in text.split("\n"):
        line = line.strip()
        if line:
            out.append(line)
    return out


# ================== DIGITS ==================
DIGIT_CONFUSIONS = {
    "O": "0", "o": "0", "Q": "0", "D": "0",
    "I": "1", "l": "1",
    "S": "5", "s": "5",
    "B": "8",
    "Z": "2",
}

_CONFUSABLE_RUN_RE = re.compile(
    r"(?<![A-Za-z0-9])[0-9OoQDIlSsBZ]+(?:[.,][0-9OoQDIlSsBZ]+)*(?![A-Za-z0-9])"
)
_THOUSANDS_RE = re.compile(r"(?<=\d),(?=\d{3}(?!\d))")
_NUMBER_RE = re.compile(r"\d+(?:\s*[.,]\s*\d{1,2}(?!\d))?")


def correct_digits(text: str) -> str:
    """Swap letter look-alikes for digits inside standalone runs that already hold a digit."""
    def fix(m: re.Match) -> str:
        token = m.group(0)
        if not any(c.isdigit() for c in token):
            return token
        return "".join(DIGIT_CONFUSIONS.get(c, c) for c in token)

    return _CONFUSABLE_RUN_RE.sub(fix, text)


def parse_number(value: Optional[str]) -> Optional[float]:
    """First number in ``value``, tolerating misread digits and a spaced or comma decimal point."""
    if not value:
        return None
    m = _NUMBER_RE.search(_THOUSANDS_RE.sub("", correct_digits(value)))
    if not m:
        return None
    raw = re.sub(r"\s+", "", m.group(0)).replace(",", ".")
    try:
        number = float(raw)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


# ================== TICKET NUMBER ==================
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


def clean_ticket_number(value: Optional[str], min_length: int = MIN_TICKET_LENGTH) -> Optional[str]:
    """Alphanumerics of ``value``, or ``None`` when fewer than ``min_length`` remain."""
    if not value:
        return None
    cleaned = _NON_ALNUM_RE.sub("", value)
    if len(cleaned) < min_length:
        return None
    return cleaned


# ================== AMOUNT POLICY ==================
@dataclass(frozen=True)
class AmountRule:
    """A named magnitude correction for OCR-read amounts."""
    name: str
    applies: Callable[[float], bool]
    correct: Callable[[float], float]


CURRENCY_SYMBOL_MERGE = AmountRule(
    name="currency-symbol-merge",
    applies=lambda v: CURRENCY_MERGE_BAND[0] < v < CURRENCY_MERGE_BAND[1],
    correct=lambda v: v - CURRENCY_MERGE_OFFSET,
)

MISSING_DECIMAL_POINT = AmountRule(
    name="missing-decimal-point",
    applies=lambda v: v >= MISSING_DECIMAL_THRESHOLD,
    correct=lambda v: v / 10,
)

DEFAULT_AMOUNT_RULES = (CURRENCY_SYMBOL_MERGE, MISSING_DECIMAL_POINT)


def apply_amount_rules(value: float, rules: Sequence[AmountRule] = DEFAULT_AMOUNT_RULES) -> float:
    for rule in rules:
        if rule.applies(value):
            corrected = rule.correct(value)
            logger.debug("Amount rule %s: %s -> %s", rule.name, value, corrected)
            value = corrected
    return round(value, 2)


# ================== DATES ==================
DATE_RE = re.compile(r"(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4}|\d{2})(?!\d)")


def expand_year(year: int, pivot: Optional[int] = None) -> int:
    """Two-digit years land in the 2000s, or the 1900s at/after ``pivot`` when one is given."""
    if year >= 100:
        return year
    if pivot is not None and year >= pivot:
        return 1900 + year
    return 2000 + year


def build_date(day: int, month: int, year: int, pivot: Optional[int] = None) -> Optional[datetime]:
    try:
        return datetime(expand_year(year, pivot), month, day)
    except (ValueError, OverflowError):
        return None


def parse_day_first(value: Optional[str]) -> Optional[datetime]:
    """Build a date from the first ``D/M/Y`` group in ``value``."""
    if not value:
        return None
    m = DATE_RE.search(correct_digits(value))
    if not m:
        return None
    day, month, year = (int(g) for g in m.groups())
    return build_date(day, month, year)


def build_route_date(day: int, month: int, year: int) -> Optional[datetime]:
    return build_date(day, month, year, pivot=TWO_DIGIT_YEAR_PIVOT)


# ================== EMISSIONS ==================
EMISSIONS_CONFUSIONS = {
    "O": "0", "o": "0", "Q": "0", "D": "0",
    "S": "5", "s": "5",
    "B": "8",
}


def normalize_emissions(token: str) -> Optional[str]:
    """Turn a raw emissions number token into ``"<value> g CO2"``."""
    digits = "".join(EMISSIONS_CONFUSIONS.get(c, c) for c in token.strip())
    digits = digits.replace(",", ".")
    if "." not in digits:
        digits = re.sub(r"\s+", ".", digits, count=1)
    digits = re.sub(r"\s+", "", digits)
    try:
        value = float(digits)
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    while value > EMISSIONS_CEILING:
        value /= 10
    return f"{value:.2f} {EMISSIONS_UNIT}"
