"""Read product URLs from an uploaded CSV or Excel sheet."""

import io
from pathlib import PurePosixPath
from typing import List

import pandas as pd
import structlog

logger = structlog.get_logger(__name__)

URL_COLUMNS = ("url", "URL", "link", "Link")
EXCEL_EXTENSIONS = frozenset([".xlsx"])


class URLFileError(ValueError):
    """The uploaded file has no usable URL column or cannot be read."""


def read_table(filename: str, content: bytes) -> pd.DataFrame:
    extension = PurePosixPath(filename or "").suffix.lower()
    try:
        if extension in EXCEL_EXTENSIONS:
            # First sheet only
            return pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=str)
        if extension == ".csv" or not extension:
            return pd.read_csv(io.BytesIO(content), dtype=str)
    except Exception as e:
        raise URLFileError(f"Could not read '{filename}': {e}") from e
    raise URLFileError(f"Unsupported file type '{extension}'; upload a .csv or .xlsx file")


def extract_urls(filename: str, content: bytes) -> List[str]:
    """URLs from the first ``url``/``URL``/``link``/``Link`` column, in row order.

    Blank cells and values that are not http(s) URLs are skipped.

    Raises:
        URLFileError: if the file cannot be parsed or has no URL column
    """
    frame = read_table(filename, content)
    column = next((c for c in URL_COLUMNS if c in frame.columns), None)
    if column is None:
        raise URLFileError(f"No URL column found; expected one of {', '.join(URL_COLUMNS)}")

    urls = []
    for value in frame[column].dropna():
        value = str(value).strip()
        if value.lower().startswith(("http://", "https://")):
            urls.append(value)

    logger.info("url_file_parsed", filename=filename, rows=len(frame), urls=len(urls))
    return urls
