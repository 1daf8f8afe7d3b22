import logging
from collections import defaultdict
from pathlib import Path

import cv2
import numpy as np
import pdfplumber
import pytesseract
from PIL import Image, UnidentifiedImageError

from farescan.config import OCR_BASE_CONFIG, OCR_LANG, OCR_MIN_WORDS, PDF_RENDER_RESOLUTION
from farescan.loader import is_pdf_file

logger = logging.getLogger(__name__)


class RecognitionError(RuntimeError):
    """The file could not be read or the recognizer failed on it."""


def _open_image(path: Path) -> Image.Image:
    try:
        with Image.open(path) as image:
            return image.convert("RGB")
    except (OSError, UnidentifiedImageError) as e:
        raise RecognitionError(f"Cannot open image {path}: {e}") from e


def _page_images(path: Path):
    try:
        with pdfplumber.open(path) as pdf:
            for page in pdf.pages:
                yield page.to_image(resolution=PDF_RENDER_RESOLUTION).original.convert("RGB")
    except (OSError, ValueError) as e:
        raise RecognitionError(f"Cannot render PDF {path}: {e}") from e


def _to_gray(img: np.ndarray) -> np.ndarray:
    if len(img.shape) == 3:
        return cv2.cvtColor(img, cv2.COLOR_RGB2GRAY)
    return img


class OCRService:
    """
    Output format:
    {
        "text": full_text,
        "blocks": [
            {
                "text": "...",
                "x": int,
                "y": int,
                "w": int,
                "h": int,
                "page": int
            }
        ]
    }
    Line text keeps the recognizer's case.
    """

    def __init__(self, lang: str = OCR_LANG, config: str = OCR_BASE_CONFIG):
        self.lang = lang
        self.config = config

    def read_text(self, path: Path) -> str:
        return self.extract_text(Path(path))["text"]

    def extract_text(self, path: Path) -> dict:
        path = Path(path)
        if not path.exists():
            raise RecognitionError(f"File not found: {path}")
        if is_pdf_file(path):
            return self._extract_pdf(path)
        return self._extract_image(path)

    # ---------- PDF ----------
    def _extract_pdf(self, path: Path) -> dict:
        full_text = []
        blocks = []
        for page_idx, image in enumerate(_page_images(path)):
            t, b = self._ocr_image(image, page_idx)
            full_text.append(t)
            blocks.extend(b)
        return {
            "text": "\n".join(full_text),
            "blocks": blocks
        }

    # ---------- IMAGE ----------
    def _extract_image(self, path: Path) -> dict:
        text, blocks = self._ocr_image(_open_image(path), page_idx=0)
        return {
            "text": text,
            "blocks": blocks
        }

    # ---------- CORE OCR ----------
    def _image_to_data(self, img: np.ndarray) -> dict:
        try:
            return pytesseract.image_to_data(
                img,
                lang=self.lang,
                output_type=pytesseract.Output.DICT,
                config=self.config
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as e:
            raise RecognitionError(f"Tesseract failed: {e}") from e

    def _ocr_image(self, image: Image.Image, page_idx: int):
        img = np.array(image)
        gray = _to_gray(img)

        thresh = cv2.adaptiveThreshold(
            gray, 255,
            cv2.ADAPTIVE_THRESH_MEAN_C,
            cv2.THRESH_BINARY,
            31, 15
        )
        data = self._image_to_data(thresh)

        # Small tickets give few words; retry once with the heavier pipeline.
        word_count = len([t for t in data["text"] if t.strip()])
        if word_count < OCR_MIN_WORDS:
            enhanced = self._image_to_data(self._preprocess_image(gray))
            enhanced_count = len([t for t in enhanced["text"] if t.strip()])
            logger.debug("Enhanced pass: %d words (was %d)", enhanced_count, word_count)
            if enhanced_count > word_count:
                data = enhanced

        # ---- GROUP WORDS INTO LINES ----
        lines = defaultdict(list)

        for i, txt in enumerate(data["text"]):
            txt = txt.strip()
            if not txt:
                continue

            line_id = (
                data["page_num"][i],
                data["block_num"][i],
                data["par_num"][i],
                data["line_num"][i],
            )

            lines[line_id].append({
                "text": txt,
                "x": data["left"][i],
                "y": data["top"][i],
                "w": data["width"][i],
                "h": data["height"][i],
            })

        blocks = []
        full_text_lines = []

        for words in lines.values():
            words.sort(key=lambda w: w["x"])
            text = " ".join(w["text"] for w in words)

            x = min(w["x"] for w in words)
            y = min(w["y"] for w in words)
            w = max(w["x"] + w["w"] for w in words) - x
            h = max(w["y"] + w["h"] for w in words) - y

            blocks.append({
                "text": text,
                "x": x,
                "y": y,
                "w": w,
                "h": h,
                "page": page_idx
            })
            full_text_lines.append(text)

        logger.info("Recognized %d lines on page %d", len(full_text_lines), page_idx)
        return "\n".join(full_text_lines), blocks

    def _preprocess_image(self, gray: np.ndarray) -> np.ndarray:
        """Deskew, denoise, boost contrast and sharpen before an Otsu threshold."""
        gray = self._deskew_image(gray)
        gray = cv2.medianBlur(gray, 3)

        clahe = cv2.createCLAHE(clipLimit=3.0, tileGridSize=(8, 8))
        enhanced = clahe.apply(gray)

        kernel = np.array([[-1, -1, -1], [-1, 9, -1], [-1, -1, -1]])
        sharpened = cv2.filter2D(enhanced, -1, kernel)

        return cv2.threshold(sharpened, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)[1]

    def _deskew_image(self, img: np.ndarray) -> np.ndarray:
        contours, _ = cv2.findContours(
            cv2.bitwise_not(img), cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE
        )
        if not contours:
            return img

        # Largest contour is usually the ticket body.
        angle = cv2.minAreaRect(max(contours, key=cv2.contourArea))[2]
        if angle < -45:
            angle += 90
        elif angle > 45:
            angle -= 90

        if abs(angle) <= 1:
            return img

        (h, w) = img.shape[:2]
        M = cv2.getRotationMatrix2D((w // 2, h // 2), angle, 1.0)
        return cv2.warpAffine(
            img, M, (w, h),
            flags=cv2.INTER_CUBIC,
            borderMode=cv2.BORDER_REPLICATE
        )


class BarcodeService:
    """Finds QR codes in an image or PDF and returns their payload strings."""

    def __init__(self):
        self.detector = cv2.QRCodeDetector()

    def scan(self, path: Path) -> list[str]:
        path = Path(path)
        if not path.exists():
            raise RecognitionError(f"File not found: {path}")
        images = _page_images(path) if is_pdf_file(path) else [_open_image(path)]

        payloads = []
        for image in images:
            for payload in self._decode(_to_gray(np.array(image))):
                if payload not in payloads:
                    payloads.append(payload)
        logger.info("Found %d QR payload(s) in %s", len(payloads), path)
        return payloads

    def _decode(self, gray: np.ndarray) -> list[str]:
        try:
            found, decoded, _, _ = self.detector.detectAndDecodeMulti(gray)
            if found:
                hits = [d for d in decoded if d]
                if hits:
                    return hits
            data, _, _ = self.detector.detectAndDecode(gray)
        except cv2.error as e:
            raise RecognitionError(f"QR detection failed: {e}") from e
        return [data] if data else []
