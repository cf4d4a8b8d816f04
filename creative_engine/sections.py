"""
Decoder for labeled model output.

Prompts that need several artifacts from one call ask the model to answer
with ``**MARKER:**`` headers. ``decode_sections`` splits the answer on those
headers and raises ``MalformedModelOutput`` when a required one is missing,
so callers can tell "nothing useful" (empty result) from "wrong format".
"""

import re
from typing import Dict, Iterable, Optional, Sequence

from .errors import MalformedModelOutput
from .prompts import CopywritingProfile


def _marker_pattern(marker: str) -> "re.Pattern[str]":
    # Accepts **MARKER:**, **MARKER**:, ## MARKER: and bare MARKER: at line start
    return re.compile(
        r"(?:^|\n)[ \t]*(?:#+[ \t]*)?\**[ \t]*" + re.escape(marker) + r"[ \t]*(?:\**[ \t]*:|:[ \t]*\**)",
        re.IGNORECASE,
    )


def decode_sections(
    text: str,
    markers: Sequence[str],
    required: Optional[Iterable[str]] = None,
) -> Dict[str, str]:
    """
    Map each marker to the text between its header and the next known header.

    Markers absent from the text are absent from the result. Every marker in
    ``required`` (all of them by default) must be present with a non-empty body.
    """
    required = list(markers if required is None else required)
    found = []
    for marker in markers:
        match = _marker_pattern(marker).search(text or "")
        if match:
            found.append((match.start(), match.end(), marker))
    found.sort()

    sections: Dict[str, str] = {}
    for i, (_, body_start, marker) in enumerate(found):
        body_end = found[i + 1][0] if i + 1 < len(found) else len(text)
        body = text[body_start:body_end].strip()
        # Drop a stray closing "**" left by headers written as **MARKER**:
        body = re.sub(r"^\*\*\s*", "", body).strip()
        if body:
            sections[marker] = body

    missing = [m for m in required if m not in sections]
    if missing:
        raise MalformedModelOutput(missing)
    return sections


def _field(block: str, label: str) -> Optional[str]:
    match = re.search(rf"{label}\s*:\s*(.+)", block, re.IGNORECASE)
    if not match:
        return None
    value = match.group(1).strip().strip("*").strip()
    return value or None


def parse_copywriting_profile(block: str) -> CopywritingProfile:
    """Read the ``- Word Count: N`` style bullet list from a static-ad analysis"""
    words = _field(block, "Word Count")
    word_match = re.search(r"\d+", words or "")
    return CopywritingProfile(
        word_count=int(word_match.group(0)) if word_match else None,
        rhetorical_figure=_field(block, "Rhetorical Figure"),
        tone=_field(block, "Tone"),
        style=_field(block, "Style"),
    )
