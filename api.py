from fastapi import FastAPI, File, UploadFile, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import List, Optional
import logging
import tempfile
import os
from pathlib import Path
from farescan.loader import stations_from_env
from farescan.model import BillRecord
from farescan.ocr import BarcodeService, OCRService
from farescan.pipeline import TicketScanner, extract_from_payload, extract_from_text, merge
from farescan.qr import QRPayloadDecoder
from farescan.stats import co2_by_day, expense_stats

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Fare Ticket Extraction API", description="API for extracting fare ticket fields from photos, OCR text and QR payloads")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services
ocr_service = OCRService()
barcode_service = BarcodeService()
decoder = QRPayloadDecoder(stations_from_env())
scanner = TicketScanner(ocr_service.read_text, barcode_service.scan, decoder=decoder)


class TextRequest(BaseModel):
    text: str


class PayloadRequest(BaseModel):
    payload: str


class MergeRequest(BaseModel):
    ocr: Optional[dict] = None
    qr: Optional[dict] = None


class StatsRequest(BaseModel):
    records: List[dict]


def _to_record(data: Optional[dict]) -> Optional[BillRecord]:
    if data is None:
        return None
    try:
        return BillRecord.from_dict(data)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid record: {e}")


@app.post("/extract")
async def extract_ticket(file: UploadFile = File(...)):
    """
    Extract ticket fields from an uploaded photo or PDF, reading any QR code on it too.
    """
    allowed_extensions = {".pdf", ".jpg", ".jpeg", ".png"}
    file_extension = Path(file.filename or "").suffix.lower()
    if file_extension not in allowed_extensions:
        raise HTTPException(status_code=400, detail="Only PDF, JPG, JPEG, and PNG files are allowed")

    # Save uploaded file to temporary location
    with tempfile.NamedTemporaryFile(delete=False, suffix=file_extension) as tmp_file:
        content = await file.read()
        tmp_file.write(content)
        tmp_path = tmp_file.name

    try:
        record = scanner.scan(Path(tmp_path))
        return record.to_dict()
    except Exception as e:
        logger.exception("Error processing %s", file.filename)
        raise HTTPException(status_code=500, detail=f"Error processing file: {str(e)}")
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


@app.post("/extract/text")
async def extract_text(body: TextRequest):
    return extract_from_text(body.text).to_dict()


@app.post("/extract/payload")
async def extract_payload(body: PayloadRequest):
    return extract_from_payload(body.payload, decoder).to_dict()


@app.post("/merge")
async def merge_records(body: MergeRequest):
    return merge(_to_record(body.ocr), _to_record(body.qr)).to_dict()


@app.post("/stats")
async def stats(body: StatsRequest):
    records = [_to_record(r) for r in body.records]
    return {
        "expenses": expense_stats(records).to_dict(),
        "co2_by_day": [{"date": day.isoformat(), "grams": grams} for day, grams in co2_by_day(records)],
    }


@app.get("/")
async def root():
    return {"message": "Fare Ticket Extraction API", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=5000)
