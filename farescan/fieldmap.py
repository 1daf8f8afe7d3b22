import logging
import re
from dataclasses import dataclass
from typing import Optional

from farescan.config import (
    LABEL_FIXES,
    LABEL_KEYWORD_MAX_LENGTH,
    LABEL_KEYWORDS,
    LOCATION_STOPWORDS,
    ORPHAN_LABELS,
)
from farescan.model import FieldMap
from farescan.normalize import split_lines

logger = logging.getLogger(__name__)

_LABEL_VALUE_RE = re.compile(r"^([A-Za-z][A-Za-z0-9 .#]{1,}?)\s*[:\-]\s*(\S.*)$")
_BARE_LABEL_RE = re.compile(r"^([A-Za-z][A-Za-z0-9 .#]{1,}?)\s*[:\-]$")
_LABEL_JUNK_RE = re.compile(r"[^a-z0-9 ]")

_ORPHAN_DATE_RE = re.compile(r"\d{1,2}[/-]\d{1,2}[/-](?:\d{4}|\d{2})(?!\d)")
_ORPHAN_CURRENCY_RE = re.compile(r"(?:INR|Rs|₹)\.?\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_ORPHAN_DECIMAL_RE = re.compile(r"(?<![\d./-])(\d+\.\d{1,2})(?![\d./-])")
_KEYWORD_RE = re.compile(r"\b(?:" + "|".join(LABEL_KEYWORDS) + r")\b")


# ================== LABELS ==================
def normalize_label(label: str) -> str:
    """Lowercase, drop punctuation and repair known misreadings word by word."""
    words = _LABEL_JUNK_RE.sub(" ", label.lower()).split()
    return " ".join(LABEL_FIXES.get(w, w) for w in words)


def is_label_line(line: str) -> bool:
    return bool(_LABEL_VALUE_RE.match(line) or _BARE_LABEL_RE.match(line))


def build_field_map(text: str) -> FieldMap:
    fields: FieldMap = {}
    pending = None

    for line in split_lines(text):
        m = _LABEL_VALUE_RE.match(line)
        if m:
            label = normalize_label(m.group(1))
            if label:
                fields[label] = m.group(2).strip()
            pending = None
            continue

        m = _BARE_LABEL_RE.match(line)
        if m:
            pending = normalize_label(m.group(1)) or None
            continue

        if pending:
            fields[pending] = line
            pending = None

    return fields


# ================== ORPHANS ==================
@dataclass(frozen=True)
class OrphanValues:
    """Values found without an adjacent label."""
    origin: Optional[str] = None
    destination: Optional[str] = None
    date: Optional[str] = None
    amount: Optional[str] = None
    amount_match: Optional[str] = None

    def relabel(self, text: str) -> str:
        """Prefix each orphan line with the label it was attributed to."""
        out = []
        for line in split_lines(text):
            label = None if is_label_line(line) else self._label_for(line)
            out.append(f"{label} : {line}" if label else line)
        return "\n".join(out)

    def _label_for(self, line: str) -> Optional[str]:
        if line == self.origin:
            return ORPHAN_LABELS["origin"]
        if line == self.destination:
            return ORPHAN_LABELS["destination"]
        if line == self.date:
            return ORPHAN_LABELS["date"]
        if self.amount_match and (line == self.amount_match or (line in self.amount_match and len(line) > 2)):
            return ORPHAN_LABELS["amount"]
        return None


def is_location_candidate(line: str) -> bool:
    if len(line) < 3 or line != line.upper():
        return False
    if not any(c.isalpha() for c in line) or any(c.isdigit() for c in line):
        return False
    if ":" in line:
        return False
    if len(line) < LABEL_KEYWORD_MAX_LENGTH and _KEYWORD_RE.search(line):
        return False
    if any(w in line for w in LOCATION_STOPWORDS):
        return False
    return True


def locate_orphans(text: str) -> OrphanValues:
    lines = split_lines(text)
    locations = [l for l in lines if is_location_candidate(l)]

    date_match = _ORPHAN_DATE_RE.search(text)

    amount = amount_match = None
    m = _ORPHAN_CURRENCY_RE.search(text)
    if m:
        amount, amount_match = m.group(1), m.group(0)
    else:
        m = _ORPHAN_DECIMAL_RE.search(text)
        if m:
            amount = amount_match = m.group(1)

    orphans = OrphanValues(
        origin=locations[0] if locations else None,
        destination=locations[1] if len(locations) > 1 else None,
        date=date_match.group(0) if date_match else None,
        amount=amount,
        amount_match=amount_match,
    )
    logger.debug("Orphan values: %s", orphans)
    return orphans
