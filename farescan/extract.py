import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from dateutil import parser as date_parser

from farescan.config import (
    AMOUNT_LABELS,
    DATE_LABELS,
    DESTINATION_LABELS,
    FALLBACK_TICKET_MIN_LENGTH,
    MIN_TICKET_LENGTH,
    ORIGIN_LABELS,
    PLACEHOLDER_TICKET_PREFIX,
    TICKET_LABELS,
)
from farescan.fieldmap import OrphanValues, build_field_map, locate_orphans
from farescan.model import BillRecord, FieldMap
from farescan.normalize import (
    DEFAULT_AMOUNT_RULES,
    AmountRule,
    apply_amount_rules,
    clean_ticket_number,
    correct_digits,
    normalize_emissions,
    normalize_text,
    parse_day_first,
    parse_number,
)

logger = logging.getLogger(__name__)

_TICKET_PREFIX_RE = re.compile(r"^(?:NUMBER|NO|N0|#)(?:[.:#\-\s]+|(?=\d))", re.IGNORECASE)
_TICKET_KEYWORD_RE = re.compile(
    r"(?:T[il1I]ck[ae]t|B[il1I]ll|Inv[o0]ice|Rece[il1]pt)\s*"
    r"(?:N[o0]\.?|#|Number)?\s*[:\-]?\s*"
    r"((?=[A-Z0-9]*\d)[A-Z0-9]{%d,})" % MIN_TICKET_LENGTH,
    re.IGNORECASE,
)
_LONG_RUN_RE = re.compile(
    r"(?<![A-Za-z0-9])(?=[A-Za-z]*\d)[A-Za-z0-9]{%d,}(?![A-Za-z0-9])" % FALLBACK_TICKET_MIN_LENGTH
)

_CURRENCY_RE = re.compile(r"(?:INR|Rs|₹)\.?\s*(\d+(?:\s*\.\s*\d+)?)", re.IGNORECASE)
_MONTH_NAME_RE = re.compile(r"\b(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\b", re.IGNORECASE)

_ORIGIN_LINE_RE = re.compile(r"^(?:fr[o0]m|frorn|source)\b\s*[:\-]?\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_DESTINATION_LINE_RE = re.compile(r"^(?:t[o0]|destination)\b\s*[:\-]?\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_ORIGIN_SEARCH_RE = re.compile(r"\b(?:fr[o0]m|frorn|source)\s*[:\-]\s*([A-Za-z][^\n]*)", re.IGNORECASE)
_DESTINATION_SEARCH_RE = re.compile(r"\b(?:t[o0]|destination)\s*[:\-]\s*([A-Za-z][^\n]*)", re.IGNORECASE)
_EMBEDDED_LABEL_RE = re.compile(
    r"\s+\b(?:t[o0]|fr[o0]m|fare|date|ticket|amount|via)\b\s*[:\-].*$", re.IGNORECASE
)
_LOCATION_JUNK_RE = re.compile(r"[^A-Za-z0-9 .()&'/\-]")

_EMISSIONS_RE = re.compile(
    r"(?<![A-Za-z0-9.])"
    r"([0-9OoQDSsB]+(?:[.,][0-9OoQDSsB]+|[ \t]+[0-9OoQDSsB]+)?)"
    r"[ \t]*(?:(?:grams?|gms?|gm|g|q)[ \t]*)?"
    r"(?:C[O0oQ][2Zz])(?![A-Za-z0-9])"
)


@dataclass(frozen=True)
class ExtractionContext:
    """Everything the field strategies read; built once per text."""
    text: str
    fields: FieldMap
    orphans: OrphanValues

    def lookup(self, labels: Sequence[str]) -> Optional[str]:
        for label in labels:
            value = self.fields.get(label)
            if value:
                return value
        return None


Strategy = Callable[[ExtractionContext], Optional[object]]


def first_of(strategies: Sequence[Strategy], ctx: ExtractionContext):
    for strategy in strategies:
        value = strategy(ctx)
        if value is not None:
            logger.debug("%s -> %r", strategy.__name__, value)
            return value
    return None


def clean_location(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.replace("\n", " ")
    value = _EMBEDDED_LABEL_RE.sub("", value)
    value = _LOCATION_JUNK_RE.sub(" ", value)
    value = re.sub(r"\s+", " ", value).strip(" ,.-/")
    if not any(c.isalpha() for c in value):
        return None
    return value


class TicketFieldExtractor:
    """Pulls ticket fields out of recognizer text.

    Every field is resolved by an ordered tuple of strategies: labelled
    value first, then a direct pattern over the text, then (where one
    exists) an orphan value. A strategy returns ``None`` to pass.
    """

    def __init__(
        self,
        amount_rules: Sequence[AmountRule] = DEFAULT_AMOUNT_RULES,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.amount_rules = tuple(amount_rules)
        self.clock = clock

        self.ticket_strategies = (
            self._ticket_from_fields,
            self._ticket_from_keyword,
            self._ticket_from_long_run,
        )
        self.amount_strategies = (
            self._amount_from_fields,
            self._amount_from_currency,
            self._amount_from_orphan,
        )
        self.date_strategies = (
            self._date_from_fields,
            self._date_from_pattern,
        )
        self.origin_strategies = (
            self._origin_from_fields,
            self._origin_from_line,
            self._origin_from_search,
            self._origin_from_orphan,
        )
        self.destination_strategies = (
            self._destination_from_fields,
            self._destination_from_line,
            self._destination_from_search,
            self._destination_from_orphan,
        )

    # ================== ENTRY ==================
    def extract(self, text: Optional[str]) -> BillRecord:
        """Candidate record with the documented defaults for fields a ticket always has."""
        record = self.candidate(text)

        ticket_number = record.ticket_number
        if not ticket_number:
            ticket_number = f"{PLACEHOLDER_TICKET_PREFIX}{int(time.time() * 1000)}"
            logger.info("No ticket number recovered, using placeholder %s", ticket_number)

        return BillRecord(
            ticket_number=ticket_number,
            amount=record.amount if record.amount is not None else 0.0,
            date=record.date if record.date is not None else self.clock(),
            origin=record.origin,
            destination=record.destination,
            emissions_saved=record.emissions_saved,
            raw_text=record.raw_text,
        )

    def candidate(self, text: Optional[str]) -> BillRecord:
        """Only what the text actually supports; unrecovered fields stay ``None``."""
        ctx = self.build_context(text)

        amount = first_of(self.amount_strategies, ctx)
        if amount is not None:
            amount = apply_amount_rules(amount, self.amount_rules)

        return BillRecord(
            ticket_number=first_of(self.ticket_strategies, ctx),
            amount=amount,
            date=first_of(self.date_strategies, ctx),
            origin=first_of(self.origin_strategies, ctx),
            destination=first_of(self.destination_strategies, ctx),
            emissions_saved=self._extract_emissions(ctx),
            raw_text=ctx.text,
        )

    def build_context(self, text: Optional[str]) -> ExtractionContext:
        normalized = normalize_text(text)
        orphans = locate_orphans(normalized)

        fields = build_field_map(normalized)
        for label, value in build_field_map(orphans.relabel(normalized)).items():
            fields.setdefault(label, value)

        return ExtractionContext(
            text=normalized,
            fields=fields,
            orphans=orphans,
        )

    # ================== TICKET NUMBER ==================
    def _ticket_from_fields(self, ctx):
        for label in TICKET_LABELS:
            value = ctx.fields.get(label)
            if not value:
                continue
            cleaned = clean_ticket_number(_TICKET_PREFIX_RE.sub("", value.strip()))
            if cleaned:
                return cleaned
            logger.debug("Rejected short ticket number %r under %r", value, label)
        return None

    def _ticket_from_keyword(self, ctx):
        m = _TICKET_KEYWORD_RE.search(ctx.text)
        return m.group(1) if m else None

    def _ticket_from_long_run(self, ctx):
        m = _LONG_RUN_RE.search(ctx.text)
        return m.group(0) if m else None

    # ================== AMOUNT ==================
    def _amount_from_fields(self, ctx):
        return parse_number(ctx.lookup(AMOUNT_LABELS))

    def _amount_from_currency(self, ctx):
        m = _CURRENCY_RE.search(correct_digits(ctx.text))
        return parse_number(m.group(1)) if m else None

    def _amount_from_orphan(self, ctx):
        return parse_number(ctx.orphans.amount)

    # ================== DATE ==================
    def _date_from_fields(self, ctx):
        value = ctx.lookup(DATE_LABELS)
        if not value:
            return None
        parsed = parse_day_first(value)
        if parsed is None and _MONTH_NAME_RE.search(value):
            try:
                parsed = date_parser.parse(value, dayfirst=True, fuzzy=True)
            except (ValueError, OverflowError):
                parsed = None
        return parsed

    def _date_from_pattern(self, ctx):
        return parse_day_first(ctx.text)

    # ================== ORIGIN / DESTINATION ==================
    def _origin_from_fields(self, ctx):
        return clean_location(ctx.lookup(ORIGIN_LABELS))

    def _origin_from_line(self, ctx):
        m = _ORIGIN_LINE_RE.search(ctx.text)
        return clean_location(m.group(1)) if m else None

    def _origin_from_search(self, ctx):
        m = _ORIGIN_SEARCH_RE.search(ctx.text)
        return clean_location(m.group(1)) if m else None

    def _origin_from_orphan(self, ctx):
        return clean_location(ctx.orphans.origin)

    def _destination_from_fields(self, ctx):
        return clean_location(ctx.lookup(DESTINATION_LABELS))

    def _destination_from_line(self, ctx):
        m = _DESTINATION_LINE_RE.search(ctx.text)
        return clean_location(m.group(1)) if m else None

    def _destination_from_search(self, ctx):
        m = _DESTINATION_SEARCH_RE.search(ctx.text)
        return clean_location(m.group(1)) if m else None

    def _destination_from_orphan(self, ctx):
        return clean_location(ctx.orphans.destination)

    # ================== EMISSIONS ==================
    def _extract_emissions(self, ctx) -> Optional[str]:
        for m in _EMISSIONS_RE.finditer(ctx.text):
            token = m.group(1)
            if not any(c.isdigit() for c in token):
                continue
            formatted = normalize_emissions(token)
            if formatted:
                return formatted
        return None
