import logging
from typing import Optional

from farescan.config import QR_ONLY_MARKER, UNKNOWN_LOCATION
from farescan.model import BillRecord

logger = logging.getLogger(__name__)


def _first(*values):
    for value in values:
        if value is not None and value != "":
            return value
    return None


def merge(ocr: Optional[BillRecord], qr: Optional[BillRecord]) -> BillRecord:
    """
    Combine the OCR and QR candidates.

    The payload is machine-encoded, so it wins for ticket number, amount and
    date. Printed text usually names stations in full, so OCR wins for the
    route. Locations never come back empty; missing ones are ``"Unknown"``.
    """
    ocr = ocr or BillRecord()
    qr = qr or BillRecord()

    raw_text = ocr.raw_text
    if not raw_text and qr.has_values():
        raw_text = QR_ONLY_MARKER

    merged = BillRecord(
        ticket_number=_first(qr.ticket_number, ocr.ticket_number),
        amount=_first(qr.amount, ocr.amount),
        date=_first(qr.date, ocr.date),
        origin=_first(ocr.origin, qr.origin, UNKNOWN_LOCATION),
        destination=_first(ocr.destination, qr.destination, UNKNOWN_LOCATION),
        emissions_saved=_first(ocr.emissions_saved, qr.emissions_saved),
        raw_text=raw_text,
    )
    logger.debug("Merged record: %s", merged)
    return merged
