"""
Numbering -- document number formats.

Formats:
    ``{prefix}-{value:0{width}d}``           e.g. GTO-00001, CE-00042, POS-00007
    ``{prefix}-{scope}-{value:0{width}d}``   e.g. CRT-2025-00001

The numeric part comes from SequenceService; this module only formats and
parses it.  Values wider than ``width`` are printed in full.
"""

import re


def sequence_name(prefix: str, scope: str | int | None = None) -> str:
    """Counter name for a document series, e.g. ``CRT-2025``."""
    if scope is None:
        return prefix
    return f"{prefix}-{scope}"


def format_number(
    prefix: str,
    value: int,
    width: int = 5,
    scope: str | int | None = None,
) -> str:
    if value <= 0:
        raise ValueError(f"Document numbers start at 1, got {value}")
    return f"{sequence_name(prefix, scope)}-{value:0{width}d}"


def parse_number(
    number: str,
    prefix: str,
    scope: str | int | None = None,
) -> int | None:
    """Numeric part of ``number`` if it belongs to the series, else None."""
    pattern = rf"^{re.escape(sequence_name(prefix, scope))}-(\d+)$"
    match = re.match(pattern, number or "")
    if match is None:
        return None
    return int(match.group(1))
