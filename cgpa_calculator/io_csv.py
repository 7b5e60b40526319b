import io
import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import pandas as pd

from .config import SPREADSHEET_EXTENSIONS, SPREADSHEET_MIME_TYPES, TEMPLATE_CSV
from .errors import FileReadError, FormatError, InvalidDataError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawRow:
    """One data line of the uploaded file, before grade resolution."""
    line: int
    name: str
    grade: str
    credits: float


# ------------------------
# Field helpers
# ------------------------

def parse_credits(value) -> Optional[float]:
    """Return value as a positive finite float, or None if it is not one."""
    text = str(value).strip()
    if "_" in text:
        return None
    try:
        credits = float(text)
    except ValueError:
        return None
    if not math.isfinite(credits) or credits <= 0:
        return None
    return credits


def _find_column(headers: List[str], term: str) -> Optional[int]:
    for idx, header in enumerate(headers):
        if term in header:
            return idx
    return None


def _field(values: List[str], idx: int) -> str:
    return values[idx] if idx < len(values) else ""


# ------------------------
# CSV parsing
# ------------------------

def parse_rows(raw_text: str) -> List[RawRow]:
    """
    Parse comma-separated text into RawRows.

    The header only has to contain a column mentioning "course", one
    mentioning "grade" and one mentioning "credit" (case-insensitive,
    first match wins). Fields are split on bare commas; quoting is not
    supported. The first bad row aborts the whole parse.
    """
    lines = raw_text.strip().split("\n")
    if len(lines) < 2:
        raise FormatError("CSV file must have a header row and at least one data row")

    headers = [h.strip().lower() for h in lines[0].split(",")]
    course_idx = _find_column(headers, "course")
    grade_idx = _find_column(headers, "grade")
    credits_idx = _find_column(headers, "credit")

    if course_idx is None or grade_idx is None or credits_idx is None:
        raise FormatError(
            "CSV file must have columns for course, grade, and credits (header names can vary)"
        )

    rows: List[RawRow] = []
    for line_no, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue

        values = [v.strip() for v in line.split(",")]
        name = _field(values, course_idx)
        grade = _field(values, grade_idx)
        credits = parse_credits(_field(values, credits_idx))

        if not name:
            raise InvalidDataError("Course name is required", line=line_no)
        if not grade:
            raise InvalidDataError(f"Grade is required for {name}", line=line_no, course=name)
        if credits is None:
            raise InvalidDataError(
                f"Credits must be a positive number for {name}", line=line_no, course=name
            )

        rows.append(RawRow(line=line_no, name=name, grade=grade, credits=credits))

    logger.info(f"Parsed {len(rows)} course rows from {len(lines)} lines")
    return rows


# ------------------------
# Upload helpers (UI-side)
# ------------------------

def is_spreadsheet(filename: str, mime_type: str = "") -> bool:
    return filename.lower().endswith(SPREADSHEET_EXTENSIONS) or mime_type in SPREADSHEET_MIME_TYPES


def spreadsheet_to_csv_text(data: bytes) -> str:
    """
    Convert the first sheet of a workbook to comma-separated text.

    Every sheet row becomes one line and fully empty rows become blank
    lines. parse_rows trims leading blank lines, so error line numbers
    count from the header row rather than from the top of the sheet.
    """
    df = pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, dtype=str)
    df = df.fillna("")

    lines = []
    for row in df.itertuples(index=False):
        cells = [str(c).strip() for c in row]
        lines.append(",".join(cells) if any(cells) else "")
    return "\n".join(lines)


def read_file_bytes(data: bytes, filename: str, mime_type: str = "") -> str:
    try:
        if is_spreadsheet(filename, mime_type):
            return spreadsheet_to_csv_text(data)
        return data.decode("utf-8-sig")
    except Exception as e:
        logger.error(f"Failed to read {filename}: {e}")
        raise FileReadError("Failed to read file") from e


def read_upload(uploaded_file) -> str:
    """Turn a Streamlit UploadedFile (or any file-like with a name) into raw text."""
    filename = getattr(uploaded_file, "name", "") or ""
    mime_type = getattr(uploaded_file, "type", "") or ""
    if hasattr(uploaded_file, "getvalue"):
        data = uploaded_file.getvalue()
    else:
        data = uploaded_file.read()
    return read_file_bytes(data, filename, mime_type)


# ------------------------
# Template download
# ------------------------

def template_frame() -> pd.DataFrame:
    header, *rows = TEMPLATE_CSV.split("\n")
    df = pd.DataFrame([r.split(",") for r in rows], columns=header.split(","))
    df["Credits"] = pd.to_numeric(df["Credits"])
    return df


def template_excel_bytes() -> bytes:
    buffer = io.BytesIO()
    template_frame().to_excel(buffer, index=False, sheet_name="Courses", engine="openpyxl")
    return buffer.getvalue()
