"""
Entry points of the extraction pipeline.

``extract_from_text`` and ``extract_from_payload`` never raise: anything the
strategies did not anticipate is logged and turned into a degraded record.
``TicketScanner`` wires the same entry points to an image recognizer and a
barcode scanner.
"""

import logging
import time
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional

from farescan.config import (
    MOCK_TICKET_PREFIX,
    OCR_FAILED_MARKER,
    QR_ONLY_MARKER,
    QR_ONLY_OCR_FAILED_MARKER,
    UNKNOWN_LOCATION,
)
from farescan.extract import TicketFieldExtractor
from farescan.merge import merge
from farescan.model import BillRecord
from farescan.normalize import normalize_text
from farescan.qr import QRPayloadDecoder
from farescan.segmented import StationDirectory

logger = logging.getLogger(__name__)

__all__ = [
    "TicketScanner",
    "extract_from_payload",
    "extract_from_text",
    "merge",
    "placeholder_record",
]

_default_extractor = TicketFieldExtractor()
_default_decoder = QRPayloadDecoder()


def extract_from_text(text: Optional[str], extractor: Optional[TicketFieldExtractor] = None) -> BillRecord:
    extractor = extractor or _default_extractor
    try:
        return extractor.extract(text)
    except Exception:
        logger.exception("Field extraction failed, returning a degraded record")
        return BillRecord(
            ticket_number=f"{MOCK_TICKET_PREFIX}{int(time.time() * 1000)}",
            amount=0.0,
            date=extractor.clock(),
            raw_text=normalize_text(text) or None,
        )


def extract_from_payload(
    payload: Optional[str],
    decoder: Optional[QRPayloadDecoder] = None,
    stations: Optional[StationDirectory] = None,
) -> BillRecord:
    if decoder is None:
        decoder = QRPayloadDecoder(stations) if stations is not None else _default_decoder
    try:
        return decoder.decode(payload)
    except Exception:
        logger.exception("Payload decoding failed, returning an empty record")
        return BillRecord(raw_text=payload or None)


def placeholder_record(clock: Callable[[], datetime] = datetime.now) -> BillRecord:
    """Stand-in record used when nothing could be read at all."""
    return BillRecord(
        ticket_number=f"{MOCK_TICKET_PREFIX}{int(time.time() * 1000)}",
        amount=0.0,
        date=clock(),
        origin=UNKNOWN_LOCATION,
        destination=UNKNOWN_LOCATION,
        raw_text=OCR_FAILED_MARKER,
    )


class TicketScanner:
    """Runs the barcode scanner and the recognizer over one file and merges what they found."""

    def __init__(
        self,
        recognizer: Callable[[object], str],
        barcode_scanner: Optional[Callable[[object], Iterable[str]]] = None,
        extractor: Optional[TicketFieldExtractor] = None,
        decoder: Optional[QRPayloadDecoder] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.recognizer = recognizer
        self.barcode_scanner = barcode_scanner
        self.extractor = extractor or _default_extractor
        self.decoder = decoder or _default_decoder
        self.clock = clock

    def scan(self, path) -> BillRecord:
        qr = self.scan_payloads(path)

        try:
            text = self.recognizer(path)
        except Exception:
            logger.exception("Text recognition failed for %s", path)
            if qr is not None:
                return merge(self.qr_fallback(QR_ONLY_OCR_FAILED_MARKER), qr)
            return placeholder_record(self.clock)

        if not text or not text.strip():
            logger.warning("No text recognized in %s", path)
            if qr is not None:
                return merge(self.qr_fallback(QR_ONLY_MARKER), qr)
            return placeholder_record(self.clock)

        return merge(extract_from_text(text, self.extractor), qr)

    def qr_fallback(self, marker: str) -> BillRecord:
        """Placeholder standing in for the OCR side; the route is left open so QR locations win."""
        return replace(placeholder_record(self.clock), origin=None, destination=None, raw_text=marker)

    def scan_payloads(self, path) -> Optional[BillRecord]:
        """Decoded record of the first payload that carries any field, else ``None``."""
        if self.barcode_scanner is None:
            return None
        try:
            payloads = list(self.barcode_scanner(path) or [])
        except Exception:
            logger.warning("Barcode scan failed for %s", path, exc_info=True)
            return None

        for payload in payloads:
            record = extract_from_payload(payload, self.decoder)
            if record.has_values():
                logger.info("Using QR payload data from %s", path)
                return record
        if payloads:
            logger.info("Found %d payload(s) in %s but none decoded", len(payloads), path)
        return None
