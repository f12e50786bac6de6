from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import pandas as pd

from marketdash.errors import EmptyFile, HeaderShapeInvalid, NoValidRegions, ParseFailed, ValidationFailed
from marketdash.models import RegionSeries
from .schema import DATE_LABEL_RE, METADATA_COLUMNS, REGION_ID_COL, REGION_NAME_COL, STATE_COL, ZIP_RE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[ValidationFailed] = None

    @property
    def reason(self) -> str:
        return self.error.reason if self.error is not None else ""


def read_wide_frame(text: str, nrows: Optional[int] = None) -> pd.DataFrame:
    try:
        frame = pd.read_csv(
            io.StringIO(text),
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            nrows=nrows,
        )
    except pd.errors.EmptyDataError as exc:
        raise EmptyFile("File is empty") from exc
    except pd.errors.ParserError as exc:
        raise ParseFailed(f"Unreadable CSV: {exc}") from exc
    return frame.fillna("")


def _header_labels(frame: pd.DataFrame) -> List[str]:
    return [str(c).strip() for c in frame.iloc[0].tolist()]


def validate_wide_csv(text: str) -> ValidationResult:
    """Check the header shape of a wide file before the full parse."""
    if not text or not text.strip():
        return ValidationResult(False, EmptyFile("File is empty"))
    try:
        frame = read_wide_frame(text, nrows=1)
    except EmptyFile as exc:
        return ValidationResult(False, exc)
    except ParseFailed as exc:
        return ValidationResult(False, HeaderShapeInvalid(str(exc)))
    if frame.empty:
        return ValidationResult(False, EmptyFile("File is empty"))

    header = _header_labels(frame)
    if len(header) <= METADATA_COLUMNS:
        return ValidationResult(
            False,
            HeaderShapeInvalid(
                f"Expected {METADATA_COLUMNS} metadata columns followed by at least one date column, "
                f"found {len(header)} columns"
            ),
        )

    dates = header[METADATA_COLUMNS:]
    for pos, label in enumerate(dates, start=METADATA_COLUMNS):
        if not DATE_LABEL_RE.match(label):
            return ValidationResult(
                False, HeaderShapeInvalid(f"Column {pos} ({label!r}) is not a YYYY-MM or YYYY-MM-DD date label")
            )
    for prev, cur in zip(dates, dates[1:]):
        if cur <= prev:
            return ValidationResult(False, HeaderShapeInvalid(f"Date columns are not ascending at {cur!r}"))
    return ValidationResult(True)


def parse_wide_csv(text: str) -> List[RegionSeries]:
    validation = validate_wide_csv(text)
    if not validation.valid:
        raise validation.error

    frame = read_wide_frame(text)
    header = _header_labels(frame)
    dates = header[METADATA_COLUMNS:]
    body = frame.iloc[1:]
    if body.empty:
        raise NoValidRegions("File has a header but no region rows")

    values = body.iloc[:, METADATA_COLUMNS:].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)
    meta = body.iloc[:, :METADATA_COLUMNS].to_numpy()

    out: List[RegionSeries] = []
    dropped = 0
    for meta_row, value_row in zip(meta, values):
        region_id = str(meta_row[REGION_ID_COL]).strip()
        name = str(meta_row[REGION_NAME_COL]).strip()
        points = [(d, float(v)) for d, v in zip(dates, value_row) if math.isfinite(v)]
        if not region_id or not points:
            dropped += 1
            continue
        out.append(
            RegionSeries(
                region_id=region_id,
                city=name.split(",", 1)[0].strip(),
                state=str(meta_row[STATE_COL]).strip(),
                zip_code=name if ZIP_RE.match(name) else None,
                points=points,
            )
        )

    if dropped:
        logger.debug("Dropped %s rows with no usable observations", dropped)
    if not out:
        raise NoValidRegions("No rows contained a region id and at least one numeric observation")
    return out


def parse_single_region(text: str) -> Optional[RegionSeries]:
    """Parse a per-region file (one header row, one data row); None when it holds no usable series."""
    try:
        series = parse_wide_csv(text)
    except (ValidationFailed, ParseFailed) as exc:
        logger.debug("Per-region file unusable: %s", exc)
        return None
    return series[0]
