"""
Local disk storage helpers for run artifacts and reports.

Screenshots and JSON reports are written with size and checksum so callers
can log what landed where. Paths handed back to results are relative to the
directory the caller provided.
"""

from __future__ import annotations

import hashlib
import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from shared.logging import get_logger

logger = get_logger(__name__)

_SLUG_UNSAFE = re.compile(r"[^a-z0-9]+")


def normalize_domain(url_or_domain: str) -> str:
    """Lowercase host with a leading www stripped."""
    value = (url_or_domain or "").strip().lower()
    if "://" in value:
        value = urlparse(value).netloc or value
    if value.startswith("www."):
        value = value[4:]
    return value or "unknown-domain"


def target_slug(url: str) -> str:
    """Filesystem-safe slug for a target: host plus first path segment."""
    parsed = urlparse(url if "://" in url else f"https://{url}")
    host = normalize_domain(parsed.netloc)
    first_segment = next((p for p in parsed.path.split("/") if p), "")
    raw = f"{host}-{first_segment}" if first_segment else host
    return _SLUG_UNSAFE.sub("-", raw.lower()).strip("-")[:80] or "target"


def ensure_artifact_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_screenshot(path: Path, image_bytes: bytes) -> tuple[int, str]:
    """
    Write screenshot bytes to disk.

    Returns (size_bytes, checksum). May raise OSError on write failure.
    """
    ensure_artifact_dir(path)
    path.write_bytes(image_bytes)
    return len(image_bytes), hashlib.md5(image_bytes).hexdigest()


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Path):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: dict) -> tuple[int, str]:
    """
    Write JSON data to disk (UTF-8, pretty-printed).

    Returns (size_bytes, checksum). May raise OSError on write failure.
    """
    ensure_artifact_dir(path)
    json_bytes = json.dumps(data, indent=2, ensure_ascii=False, default=_json_default).encode("utf-8")
    path.write_bytes(json_bytes)
    return len(json_bytes), hashlib.md5(json_bytes).hexdigest()


def utc_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
