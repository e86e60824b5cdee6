"""
Dataset Loader

Reads an uploaded CSV or Excel file into the headers/rows shape the analytics
engine works on. CSV cells stay as text so keys such as invoice numbers keep
their leading zeros; Excel cells keep their native types.
"""

import io
import math
import logging
from datetime import date, datetime
from typing import Any, List

import pandas as pd

from workpaper import config
from workpaper.errors import ValidationError
from workpaper.schemas import Dataset

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".csv", ".xlsx", ".xls")


def _plain(value: Any) -> Any:
    """Convert a pandas/numpy cell to a JSON-friendly Python scalar."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        try:
            value = value.item()
        except (ValueError, AttributeError):
            pass
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def dataframe_to_dataset(df: pd.DataFrame, filename: str = None) -> Dataset:
    headers = [str(c).strip() for c in df.columns]
    rows: List[List[Any]] = [[_plain(v) for v in record] for record in df.itertuples(index=False, name=None)]
    return Dataset(headers=headers, rows=rows, filename=filename)


def _read_frame(filename: str, buffer: io.BytesIO) -> pd.DataFrame:
    if filename.endswith(".xlsx"):
        logger.info(f"Reading {filename} as XLSX using openpyxl engine")
        return pd.read_excel(buffer, engine="openpyxl", dtype=object)
    if filename.endswith(".xls"):
        logger.info(f"Reading {filename} as XLS (legacy format)")
        return pd.read_excel(buffer, engine="xlrd", dtype=object)

    logger.info(f"Reading {filename} as CSV")
    try:
        return pd.read_csv(buffer, encoding="utf-8", dtype=str, keep_default_na=False)
    except UnicodeDecodeError:
        buffer.seek(0)
        return pd.read_csv(buffer, encoding="latin-1", dtype=str, keep_default_na=False)


def load_dataset(filename: str, contents: bytes) -> Dataset:
    """Parse uploaded file bytes; raises ValidationError for anything unusable."""
    filename = (filename or "").lower()
    size = len(contents or b"")

    if size == 0:
        raise ValidationError("File is empty. Please upload a file with data.")
    if size > config.MAX_UPLOAD_BYTES:
        raise ValidationError(
            f"File too large ({size / 1024 / 1024:.1f} MB). Maximum allowed: {config.MAX_UPLOAD_MB}MB"
        )
    if not filename.endswith(SUPPORTED_EXTENSIONS):
        raise ValidationError(f"Unsupported file type. Please upload one of: {', '.join(SUPPORTED_EXTENSIONS)}")

    try:
        df = _read_frame(filename, io.BytesIO(contents))
    except Exception as e:
        logger.error(f"Error reading {filename}: {type(e).__name__}: {e}")
        raise ValidationError(f"Failed to read {filename}. The file may be corrupted or in an unsupported format.")

    if df.empty:
        raise ValidationError("File has no data rows. Please ensure the file contains data.")

    dataset = dataframe_to_dataset(df, filename=filename)
    logger.info(f"Loaded dataset {filename}: {len(dataset.rows)} row(s), {len(dataset.headers)} column(s)")
    return dataset
