import json
import logging
import os
from pathlib import Path
from typing import Optional

from farescan.config import DEFAULT_STATION_CODES, STATIONS_ENV_VAR
from farescan.segmented import StationDirectory

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = [".png", ".jpg", ".jpeg", ".tiff", ".bmp"]


def is_image_file(path: Path) -> bool:
    return path.suffix.lower() in IMAGE_SUFFIXES


def is_pdf_file(path: Path) -> bool:
    return path.suffix.lower() == ".pdf"


def load_station_codes(path: Optional[Path]) -> StationDirectory:
    """Read a ``{code: name}`` JSON object into a station directory."""
    if path is None:
        return StationDirectory(DEFAULT_STATION_CODES)
    path = Path(path)
    with path.open(encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"Station table must be a JSON object: {path}")
    logger.info("Loaded %d station codes from %s", len(data), path)
    return StationDirectory(data)


def stations_from_env() -> StationDirectory:
    value = os.environ.get(STATIONS_ENV_VAR)
    return load_station_codes(Path(value) if value else None)
