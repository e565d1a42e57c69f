"""Extract touched file paths from unified diff text.

Two header styles are recognised independently and their results unioned:

    diff --git a/src/app.ts b/src/app.ts      -> takes the b/ path
    --- a/src/app.ts  /  +++ b/src/app.ts     -> takes the a/ or b/ path

Some renderers omit one style, so neither is required. ``/dev/null`` sides of
added or deleted files carry no prefix and are ignored by construction.
"""

from __future__ import annotations

import re
from typing import Any

import structlog

logger = structlog.get_logger()

_DIFF_GIT_HEADER = re.compile(r"^diff --git a/(.+?) b/(.+?)$", re.MULTILINE)
_FILE_HEADER = re.compile(r"^(?:\+\+\+|---) [ab]/(.+?)$", re.MULTILINE)

_SAMPLE_CHARS = 500


def extract_files_from_diff(diff_text: Any) -> list[str]:
    """Return the unique paths touched by ``diff_text``, sorted.

    Never raises: non-string or unparseable input yields an empty list and a
    warning log entry.
    """
    if not isinstance(diff_text, str) or not diff_text:
        logger.warning("diff_content_invalid", content_type=type(diff_text).__name__)
        return []

    # CRLF renderers leave a trailing \r that $ would otherwise capture
    text = diff_text.replace("\r\n", "\n")

    paths: set[str] = set()
    for match in _DIFF_GIT_HEADER.finditer(text):
        path = match.group(2).strip()
        if path:
            paths.add(path)
    for match in _FILE_HEADER.finditer(text):
        path = match.group(1).strip()
        if path:
            paths.add(path)

    if not paths:
        logger.warning(
            "diff_no_files_detected",
            sample=text[:_SAMPLE_CHARS],
        )
        return []

    logger.debug("diff_files_extracted", count=len(paths))
    return sorted(paths)
