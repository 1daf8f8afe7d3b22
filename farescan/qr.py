import json
import logging
import re
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional, Sequence

from dateutil import parser as date_parser

from farescan.model import BillRecord
from farescan.normalize import build_date, clean_ticket_number, parse_number
from farescan.segmented import DEFAULT_STATIONS, StationDirectory, decode_segmented, parse_epoch

logger = logging.getLogger(__name__)

TICKET_KEYS = ("billNumber", "billNo", "id", "bill", "ticket", "ticketNumber", "invoice", "bill_no")
AMOUNT_KEYS = ("amount", "fare", "total")
DATE_KEYS = ("date", "billDate")
ORIGIN_KEYS = ("from", "source")
DESTINATION_KEYS = ("to", "destination")

_KEY_JUNK_RE = re.compile(r"[^a-z0-9]")
_KV_RE = re.compile(r"([A-Za-z ]{2,})[:=]\s*([^;\n]+)")
_EPOCH_VALUE_RE = re.compile(r"^\d{10,}$")

_FREE_AMOUNT_RE = re.compile(r"(?:fare|total|amount|rs\.?|₹|inr)\s*[:=]?\s*(\d+(?:\.\d{1,2})?)", re.IGNORECASE)
_FREE_TICKET_RE = re.compile(
    r"(?:ticket|bill|invoice|receipt)\s*(?:no\.?|#|number|id)?\s*[:=]?\s*([A-Z0-9T-]+)", re.IGNORECASE
)
_FREE_DATE_RE = re.compile(r"(?:date|dated|valid)\s*[:=]?\s*(\d{1,2})[-/](\d{1,2})[-/](\d{4}|\d{2})(?!\d)", re.IGNORECASE)
_FREE_FROM_RE = re.compile(r"\bfrom\s*[:=]?\s*([A-Z0-9 ]+?)(?=\s+to\b|\s*$|[^A-Z0-9 ])", re.IGNORECASE)
_FREE_TO_RE = re.compile(r"\bto\b\s*[:=]?\s*([A-Z0-9 ]+)", re.IGNORECASE)


# ================== FIELD SYNONYMS ==================
def _key(name) -> str:
    return _KEY_JUNK_RE.sub("", str(name).lower())


def _pick(data: dict, keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = data.get(_key(key))
        if isinstance(value, bool):
            continue
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, (int, float)):
            return str(value)
    return None


def parse_payload_ticket(raw: Optional[str]) -> Optional[str]:
    """A payload ticket is one token; anything with inner spaces is prose, not an id."""
    if not raw or len(raw.split()) != 1:
        return None
    return clean_ticket_number(raw)


def parse_payload_amount(raw: Optional[str]) -> Optional[float]:
    return parse_number(raw)


def parse_payload_date(raw: Optional[str]) -> Optional[datetime]:
    """Epoch numbers, ISO strings, then anything dateutil accepts; aware times become naive UTC."""
    if not raw:
        return None
    if _EPOCH_VALUE_RE.match(raw):
        return parse_epoch(raw)
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        try:
            parsed = date_parser.parse(raw)
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except (ValueError, OverflowError):
            return None
    return parsed


def record_from_mapping(data: dict) -> BillRecord:
    """Map a loosely keyed object onto a record; key case and punctuation are ignored."""
    normalized = {_key(k): v for k, v in data.items()}
    return BillRecord(
        ticket_number=parse_payload_ticket(_pick(normalized, TICKET_KEYS)),
        amount=parse_payload_amount(_pick(normalized, AMOUNT_KEYS)),
        date=parse_payload_date(_pick(normalized, DATE_KEYS)),
        origin=_pick(normalized, ORIGIN_KEYS),
        destination=_pick(normalized, DESTINATION_KEYS),
    )


# ================== FORMATS ==================
class PayloadStrategy:
    """One way of reading a payload. ``decode`` returns ``None`` when the payload is not in this format."""
    name = "payload"

    def decode(self, payload: str) -> Optional[BillRecord]:
        raise NotImplementedError


class JsonPayloadStrategy(PayloadStrategy):
    name = "json"

    def decode(self, payload):
        try:
            data = json.loads(payload)
        except (ValueError, RecursionError):
            return None
        if not isinstance(data, dict):
            return None
        return record_from_mapping(data)


class KeyValuePayloadStrategy(PayloadStrategy):
    name = "key-value"

    def decode(self, payload):
        pairs = {}
        for m in _KV_RE.finditer(payload):
            pairs[m.group(1).strip().lower()] = m.group(2).strip()
        if not pairs:
            return None
        return record_from_mapping(pairs)


class SegmentedPayloadStrategy(PayloadStrategy):
    name = "segmented"

    def __init__(self, stations: StationDirectory = DEFAULT_STATIONS):
        self.stations = stations

    def decode(self, payload):
        return decode_segmented(payload, self.stations)


class FreeTextPayloadStrategy(PayloadStrategy):
    name = "free-text"

    def decode(self, payload):
        if not payload:
            return None

        amount = _FREE_AMOUNT_RE.search(payload)
        ticket = _FREE_TICKET_RE.search(payload)
        date = _FREE_DATE_RE.search(payload)
        origin = _FREE_FROM_RE.search(payload)
        destination = _FREE_TO_RE.search(payload)

        parsed_date = None
        if date:
            # Payload dates are day-first.
            day, month, year = (int(g) for g in date.groups())
            parsed_date = build_date(day, month, year)

        return BillRecord(
            ticket_number=clean_ticket_number(ticket.group(1)) if ticket else None,
            amount=float(amount.group(1)) if amount else None,
            date=parsed_date,
            origin=origin.group(1).strip() or None if origin else None,
            destination=destination.group(1).strip() or None if destination else None,
        )


# ================== DECODER ==================
class QRPayloadDecoder:
    """Tries each payload format in order; the first record with any value wins."""

    def __init__(self, stations: StationDirectory = DEFAULT_STATIONS, strategies: Optional[Sequence[PayloadStrategy]] = None):
        if strategies is None:
            strategies = (
                JsonPayloadStrategy(),
                KeyValuePayloadStrategy(),
                SegmentedPayloadStrategy(stations),
                FreeTextPayloadStrategy(),
            )
        self.strategies = tuple(strategies)

    def decode(self, payload: Optional[str]) -> BillRecord:
        trimmed = (payload or "").strip()
        for strategy in self.strategies:
            record = strategy.decode(trimmed)
            if record is not None and record.has_values():
                logger.debug("Payload decoded as %s", strategy.name)
                return replace(record, raw_text=trimmed)
            logger.debug("Payload is not %s", strategy.name)
        logger.warning("No structured data found in payload")
        return BillRecord(raw_text=trimmed or None)
