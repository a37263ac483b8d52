from __future__ import annotations

import io
import math
import re
import time
from dataclasses import is_dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import logging

import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from audience_estimator.config import AUDIENCE_DATA_TIMEOUT, default_data_source
from audience_estimator.core.rules import DataRow

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: List[str] = ["state_code", "taxonomy", "segment", "population_pct"]

_INT_SEGMENT = re.compile(r"^[+-]?\d+$")


class DataLoaderError(Exception):
    """Raised when the row table cannot be fetched or has an unexpected shape."""


def _build_retry_session() -> requests.Session:
    """
    Build a requests Session with conservative retries.
    Static hosting and object stores can be transiently flaky.
    """
    session = requests.Session()

    retry = Retry(
        total=5,
        connect=5,
        read=5,
        status=5,
        backoff_factor=0.6,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=4)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


_SESSION: Optional[requests.Session] = None

# Parsed tables keyed by source
_ROWS_CACHE: Dict[str, pd.DataFrame] = {}


def _get_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        _SESSION = _build_retry_session()
    return _SESSION


def _is_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


def _fetch_csv_text(url: str, timeout_seconds: int) -> str:
    try:
        resp = _get_session().get(url, timeout=timeout_seconds)
    except Exception as exc:
        raise DataLoaderError(f"HTTP error while fetching {url}: {exc}") from exc

    if resp.status_code != 200:
        preview = (resp.text or "")[:200]
        raise DataLoaderError(f"Failed to load CSV: status={resp.status_code}. Preview: {preview}")

    text = resp.text or ""
    if not text.strip():
        raise DataLoaderError(f"Empty response body from {url}")
    return text


def parse_segment(value: Any) -> Any:
    """
    Typed segment from CSV text: int for integer text ('09' -> 9), float for
    other finite numeric text ('70.5'), otherwise the trimmed text.
    Non-string values are returned unchanged.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if _INT_SEGMENT.match(text):
        return int(text)
    try:
        number = float(text)
    except ValueError:
        return text
    return number if math.isfinite(number) else text


def parse_rows(raw: pd.DataFrame) -> pd.DataFrame:
    """
    Normalise a raw string table into the estimator's row frame.

    Rows with an empty field or a non-numeric population_pct are dropped.
    """
    lower = {str(c).strip().lower(): c for c in raw.columns}
    missing = [c for c in REQUIRED_COLUMNS if c not in lower]
    if missing:
        raise DataLoaderError(
            f"Row table is missing required columns {missing}. Present columns: {list(raw.columns)}"
        )

    out = pd.DataFrame()
    for col in REQUIRED_COLUMNS:
        out[col] = raw[lower[col]].astype(str).str.strip()

    out["population_pct"] = pd.to_numeric(out["population_pct"], errors="coerce")
    keep = (
        (out["state_code"] != "")
        & (out["taxonomy"] != "")
        & (out["segment"] != "")
        & out["population_pct"].notna()
    )
    dropped = int((~keep).sum())
    if dropped:
        logger.warning("Dropped %d malformed rows while parsing the row table.", dropped)

    out = out[keep].copy()
    out["segment"] = out["segment"].map(parse_segment).astype(object)
    out["population_pct"] = out["population_pct"].astype(float)
    return out.reset_index(drop=True)


def parse_csv_text(text: str) -> pd.DataFrame:
    raw = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False, skipinitialspace=True)
    return parse_rows(raw)


def load_rows(
    source: Optional[str] = None,
    *,
    refresh: bool = False,
    timeout_seconds: int = AUDIENCE_DATA_TIMEOUT,
) -> pd.DataFrame:
    """
    Load the state/taxonomy/segment table from a local path or an HTTP(S) URL.

    The parsed frame is cached per source; pass refresh=True to reload.
    Failures propagate: FileNotFoundError for a missing file, DataLoaderError
    for HTTP or shape problems.
    """
    src = str(source or default_data_source()).strip()
    if not refresh and src in _ROWS_CACHE:
        return _ROWS_CACHE[src]

    t0 = time.perf_counter()
    logger.info("Loading row table from %s", src)

    if _is_url(src):
        frame = parse_csv_text(_fetch_csv_text(src, timeout_seconds))
    else:
        path = Path(src).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Row table not found at {path}")
        raw = pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=True)
        frame = parse_rows(raw)

    logger.info(
        "Parsed %d rows (%d taxonomies, %d states) in %.2fs",
        len(frame),
        frame["taxonomy"].nunique(),
        frame["state_code"].nunique(),
        time.perf_counter() - t0,
    )
    _ROWS_CACHE[src] = frame
    return frame


def clear_cache() -> None:
    _ROWS_CACHE.clear()


def _row_values(row: Any) -> Tuple[Any, Any, Any, Any]:
    if isinstance(row, dict):
        return tuple(row[c] for c in REQUIRED_COLUMNS)  # type: ignore[return-value]
    if is_dataclass(row):
        return (row.state_code, row.taxonomy, row.segment, row.population_pct)
    raise TypeError(f"Unsupported row type: {type(row)}")


def rows_to_frame(rows: Iterable[Any]) -> pd.DataFrame:
    """Frame from DataRow objects or mappings with the four required keys."""
    records = []
    for row in rows:
        state_code, taxonomy, segment, pct = _row_values(row)
        records.append(
            {
                "state_code": str(state_code).strip(),
                "taxonomy": str(taxonomy).strip(),
                "segment": segment,
                "population_pct": float(pct),
            }
        )
    if not records:
        return pd.DataFrame(columns=REQUIRED_COLUMNS)
    frame = pd.DataFrame.from_records(records, columns=REQUIRED_COLUMNS)
    frame["segment"] = frame["segment"].astype(object)
    return frame


def frame_to_rows(frame: pd.DataFrame) -> List[DataRow]:
    return [
        DataRow(
            state_code=str(r.state_code),
            taxonomy=str(r.taxonomy),
            segment=r.segment,
            population_pct=float(r.population_pct),
        )
        for r in frame[REQUIRED_COLUMNS].itertuples(index=False)
    ]
