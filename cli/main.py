import argparse
import logging
from pathlib import Path
from farescan.loader import load_station_codes
from farescan.ocr import BarcodeService, OCRService
from farescan.pipeline import TicketScanner, extract_from_payload, extract_from_text, merge
from farescan.qr import QRPayloadDecoder


def print_record(title, record):
    print("\n" + "=" * 40)
    print(title)
    print("=" * 40)
    for k, v in record.to_dict().items():
        if k == "raw_text":
            continue
        print(f"{k}: {v}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Extract fare ticket fields")
    parser.add_argument("-i", "--input", help="ticket photo or PDF")
    parser.add_argument("--text", help="file holding already recognized ticket text")
    parser.add_argument("--payload", help="raw QR payload string")
    parser.add_argument("--stations", help="JSON file mapping station codes to names")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if not (args.input or args.text or args.payload):
        parser.error("one of -i/--input, --text or --payload is required")

    stations = load_station_codes(Path(args.stations) if args.stations else None)
    decoder = QRPayloadDecoder(stations)

    if args.input:
        path = Path(args.input)
        if not path.exists():
            raise FileNotFoundError("File not found")
        ocr = OCRService()
        scanner = TicketScanner(ocr.read_text, BarcodeService().scan, decoder=decoder)
        record = scanner.scan(path)

        print("OCR TEXT:")
        print(record.raw_text or "")
        print_record("EXTRACTED FIELDS", record)
        return

    ocr_record = qr_record = None
    if args.text:
        path = Path(args.text)
        if not path.exists():
            raise FileNotFoundError("File not found")
        ocr_record = extract_from_text(path.read_text(encoding="utf-8"))
        print_record("OCR FIELDS", ocr_record)
    if args.payload:
        qr_record = extract_from_payload(args.payload, decoder)
        print_record("QR FIELDS", qr_record)

    if ocr_record is not None and qr_record is not None:
        print_record("MERGED FIELDS", merge(ocr_record, qr_record))


if __name__ == "__main__":
    main()
