"""Plain-text sanitising for grader feedback."""

from __future__ import annotations

import re

_SCRIPT_BLOCK = re.compile(r"<script[\s\S]*?>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_BLOCK = re.compile(r"<style[\s\S]*?>[\s\S]*?</style>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
# Control characters except tab, newline and carriage return.
_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_feedback(value: str | None) -> str | None:
    """Strip markup and control characters, returning ``None`` when empty.

    Examples
    --------
    >>> sanitize_feedback("<b>Good</b> work<script>x()</script>")
    'Good work'
    >>> sanitize_feedback("   ") is None
    True

    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    text = _SCRIPT_BLOCK.sub("", text)
    text = _STYLE_BLOCK.sub("", text)
    text = _TAG.sub("", text)
    text = _CONTROL.sub("", text).strip()
    return text or None
