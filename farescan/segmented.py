"""
Segmented metro-ticket QR payloads.

The payload carries one or more ``{...}`` blocks. The data block holds
``|``-separated segments whose meaning depends only on their position; the
route block holds ``<...>`` tokens (origin, destination, ``dd|mm|yy``).
Nothing in the payload describes its own layout, so the positions below are
a fixed schema version. A payload without ``|`` is not this format.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping, Optional

from farescan.config import (
    DEFAULT_STATION_CODES,
    EPOCH_MILLIS_THRESHOLD,
    EPOCH_YEAR_RANGE,
)
from farescan.model import BillRecord
from farescan.normalize import build_route_date, clean_ticket_number

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SEQUENCE_POSITION = 4
ORIGIN_CODE_POSITION = 7
DESTINATION_CODE_POSITION = 8
MIN_DATA_SEGMENTS = 4

_BLOCK_RE = re.compile(r"\{([^{}]*)\}")
_ROUTE_TOKEN_RE = re.compile(r"<([^>]+)>")
_HEX_FLOAT_RE = re.compile(r"^0x([0-9a-f]+)(?:\.([0-9a-f]+))?p([+-]?\d+)$", re.IGNORECASE)
_DECIMAL_RE = re.compile(r"^\d+(?:\.\d+)?$")
_EPOCH_RE = re.compile(r"^\d{10,}$")
_TICKET_RE = re.compile(r"[A-Z].*\d")
_TIME_TOKEN_RE = re.compile(r"T\d{3,}")
_LONG_DIGITS_RE = re.compile(r"\d{6,}")
_METRO_RE = re.compile(r"metro", re.IGNORECASE)

MIN_TICKET_SEGMENT_LENGTH = 10


# ================== STATIONS ==================
@dataclass(frozen=True)
class StationDirectory:
    """Read-only station code -> name table (codes matched case-insensitively)."""
    codes: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        table = {str(k).strip().lower(): str(v) for k, v in dict(self.codes).items()}
        object.__setattr__(self, "codes", MappingProxyType(table))

    def decode(self, code: Optional[str]) -> Optional[str]:
        if not code or not code.strip():
            return None
        code = code.strip()
        name = self.codes.get(code.lower())
        if name:
            return name
        logger.info("Unknown metro station code %r", code)
        return code.upper()


DEFAULT_STATIONS = StationDirectory(DEFAULT_STATION_CODES)


# ================== TOKENS ==================
def parse_metro_datetime(token: str) -> Optional[datetime]:
    """``YYYYMMDDTHHMMSS[mmm]``; the century digits are ignored and read as 20xx."""
    normalized = re.sub(r"[^0-9T]", "", token)
    parts = normalized.split("T")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    date_section, time_section = parts[0], parts[1]
    if len(date_section) != 8:
        return None

    year = 2000 + int(date_section[2:4])
    month = int(date_section[4:6])
    day = int(date_section[6:8])

    padded = time_section.ljust(6, "0")
    millis = time_section[6:9] if len(time_section) > 6 else "0"
    try:
        return datetime(
            year, month, day,
            int(padded[0:2]), int(padded[2:4]), int(padded[4:6]),
            int(millis.ljust(3, "0")) * 1000,
        )
    except ValueError:
        return None


def parse_hex_float(value: str) -> Optional[float]:
    """Decode a C99 hex float literal such as ``0x1.8p+3`` from its mantissa and exponent."""
    m = _HEX_FLOAT_RE.match(value.strip())
    if not m:
        return None
    integer_part, fraction_part, exponent_part = m.groups()

    try:
        mantissa = float(int(integer_part, 16))
        for index, digit in enumerate(fraction_part or "", start=1):
            mantissa += int(digit, 16) / 16 ** index
        return mantissa * 2.0 ** int(exponent_part)
    except (OverflowError, ValueError):
        return None


def parse_epoch(value: str) -> Optional[datetime]:
    """Seconds or milliseconds since the Unix epoch, accepted only inside the plausible year window."""
    try:
        raw = int(value)
        seconds = raw / 1000 if raw > EPOCH_MILLIS_THRESHOLD else raw
        moment = datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError):
        return None
    if not EPOCH_YEAR_RANGE[0] <= moment.year <= EPOCH_YEAR_RANGE[1]:
        return None
    return moment


def format_route_token(token: str) -> Optional[str]:
    cleaned = re.sub(r"^[^A-Za-z0-9]+", "", token).split("|")[0].strip()
    return cleaned or None


# ================== SCHEMA ==================
@dataclass(frozen=True)
class SegmentedPayload:
    """Positional view of a data block (schema version 1)."""
    segments: tuple

    def at(self, position: int) -> Optional[str]:
        return self.segments[position] if position < len(self.segments) else None

    @property
    def sequence_token(self) -> Optional[str]:
        return self.at(SEQUENCE_POSITION)

    @property
    def origin_code(self) -> Optional[str]:
        return self.at(ORIGIN_CODE_POSITION)

    @property
    def destination_code(self) -> Optional[str]:
        return self.at(DESTINATION_CODE_POSITION)

    def find(self, pattern, exclude: Optional[int] = None, search: bool = True, min_length: int = 0) -> Optional[str]:
        for index, segment in enumerate(self.segments):
            if index == exclude or len(segment) < min_length:
                continue
            hit = pattern.search(segment) if search else pattern.match(segment)
            if hit:
                return segment
        return None


@dataclass(frozen=True)
class RouteBlock:
    tokens: tuple

    @property
    def origin(self) -> Optional[str]:
        return format_route_token(self.tokens[0]) if self.tokens else None

    @property
    def destination(self) -> Optional[str]:
        return format_route_token(self.tokens[1]) if len(self.tokens) > 1 else None

    @property
    def date(self) -> Optional[datetime]:
        if len(self.tokens) < 3:
            return None
        parts = self.tokens[2].split("|")
        if len(parts) < 3:
            return None
        try:
            day, month, year = (int(p.strip()) for p in parts[:3])
        except ValueError:
            return None
        return build_route_date(day, month, year)


def split_blocks(payload: str):
    """Return ``(data, route)`` views of the first matching blocks, either may be ``None``."""
    blocks = [b.strip() for b in _BLOCK_RE.findall(payload)]
    blocks = [b for b in blocks if b]

    data = route = None
    for block in blocks:
        if data is None and "<" not in block and "|" in block and len(block.split("|")) >= MIN_DATA_SEGMENTS:
            segments = tuple(s.strip() for s in block.split("|") if s.strip())
            data = SegmentedPayload(segments)
        if route is None and "<" in block and ">" in block:
            route = RouteBlock(tuple(_ROUTE_TOKEN_RE.findall(block)))
    return data, route


# ================== DECODER ==================
def _with_code(text: str, decoded: Optional[str]) -> str:
    if decoded and decoded.lower() not in text.lower():
        return f"{text} ({decoded})"
    return text


def decode_segmented(payload: str, stations: StationDirectory = DEFAULT_STATIONS) -> Optional[BillRecord]:
    if "|" not in payload:
        return None

    data, route = split_blocks(payload)
    if data is None and route is None:
        return None

    ticket_number = amount = date = origin = destination = None

    if data is not None:
        sequence = data.sequence_token
        date_position = None
        if sequence:
            date = parse_metro_datetime(sequence)
            if date is not None:
                date_position = SEQUENCE_POSITION
            else:
                ticket_number = clean_ticket_number(sequence)

        if not ticket_number:
            ticket_number = clean_ticket_number(
                data.find(_TICKET_RE, exclude=date_position, min_length=MIN_TICKET_SEGMENT_LENGTH)
            )

        hex_segment = data.find(_HEX_FLOAT_RE, search=False)
        if hex_segment:
            amount = parse_hex_float(hex_segment)
        if amount is None:
            for segment in data.segments:
                if _DECIMAL_RE.match(segment) and not _EPOCH_RE.match(segment):
                    amount = float(segment)
                    break

        if date is None:
            epoch = data.find(_EPOCH_RE, search=False)
            if epoch:
                date = parse_epoch(epoch)
                if date is not None:
                    date_position = data.segments.index(epoch)

        if date is None:
            token = data.find(_TIME_TOKEN_RE)
            if token:
                date = parse_metro_datetime(token)
                if date is not None:
                    date_position = data.segments.index(token)

        if not ticket_number:
            ticket_number = clean_ticket_number(data.find(_LONG_DIGITS_RE, exclude=date_position))

        if route is None:
            origin = stations.decode(data.origin_code)
            destination = stations.decode(data.destination_code)

    if route is not None:
        origin = route.origin or origin
        destination = route.destination or destination
        if date is None:
            date = route.date

    if data is not None and route is not None:
        from_code, to_code = data.origin_code, data.destination_code

        if not origin or _METRO_RE.search(origin):
            origin = stations.decode(from_code) or origin
        elif from_code:
            origin = _with_code(origin, stations.decode(from_code))

        if not destination or destination == origin or _METRO_RE.search(destination):
            decoded = stations.decode(to_code)
            if decoded:
                destination = decoded
            elif from_code == to_code:
                destination = None
        elif to_code:
            destination = _with_code(destination, stations.decode(to_code))

    record = BillRecord(
        ticket_number=ticket_number,
        amount=amount,
        date=date,
        origin=origin,
        destination=destination,
    )
    logger.debug("Parsed segmented payload v%d: %s", SCHEMA_VERSION, record)
    return record
