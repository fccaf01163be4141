"""
Structural pre-check for submitted ZPL.

Only the presence of a complete label block is checked here. Everything about the
commands inside the block is left to the conversion engine, which reports problems
as the job's failure message.
"""

from __future__ import annotations

from typing import Any

from .errors import InvalidInputError

BLOCK_START = "^XA"
BLOCK_END = "^XZ"

MISSING_CONTENT_REASON = "ZPL content is required and must be text"
MISSING_BLOCK_REASON = (
    "ZPL content is not valid. It must contain at least one label delimited by ^XA and ^XZ"
)


def validate_zpl_content(content: Any) -> None:
    """
    Reject content that cannot contain a single label.

    Args:
        content: The submitted markup, normally a ``str``

    Raises:
        InvalidInputError: If the content is missing, not text, blank, or has no
            ``^XA`` followed later by ``^XZ``

    Example:
        >>> validate_zpl_content("^XA^FO50,50^FDHello^FS^XZ")
    """
    if not isinstance(content, str) or not content.strip():
        raise InvalidInputError(MISSING_CONTENT_REASON)

    upper = content.upper()
    start = upper.find(BLOCK_START)
    if start == -1 or upper.find(BLOCK_END, start + len(BLOCK_START)) == -1:
        raise InvalidInputError(MISSING_BLOCK_REASON)
