"""
Utility functions shared across the service.

This module provides helper functions for:
- Ensuring directory creation
- Decoding uploaded ZPL payloads
- Timestamps in UTC
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path


def ensure_directory(path: Path) -> Path:
    """Create ``path`` and its parents if needed and return it. OSError propagates."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def decode_zpl_payload(raw: bytes) -> str:
    """
    Decode an uploaded ZPL file.

    Args:
        raw: File contents

    Returns:
        The text, with a UTF-8 byte order mark removed if present

    Raises:
        UnicodeDecodeError: If the bytes are not valid UTF-8
    """
    return raw.decode("utf-8-sig")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
