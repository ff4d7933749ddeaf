"""
Programmatic density clamp — runs after generation, before persisting.

Bullets and table data rows beyond the limits are moved out of the body
into an "Additional details: ..." overflow string that the slide loop
appends to the speaker notes. Header and separator rows always stay.
"""

import re
from dataclasses import dataclass

_BULLET = re.compile(r"^\s*(?:[-*]|\d+[.)])\s")
_TABLE_SEPARATOR = re.compile(r"^\|[\s\-|:]+\|$")
_MARKDOWN_NOISE = re.compile(r"[|*_#>`]|^\s*(?:[-*]|\d+[.)])\s", re.MULTILINE)


@dataclass(frozen=True)
class DensityLimits:
    max_bullets: int = 4
    max_words: int = 50
    max_table_rows: int = 4


@dataclass
class TruncationResult:
    body: str
    overflow: str
    was_truncated: bool


def count_content_words(body: str) -> int:
    """Words of visible text, ignoring markdown markers and table separators."""
    lines = [ln for ln in body.splitlines() if not _TABLE_SEPARATOR.match(ln.strip())]
    text = _MARKDOWN_NOISE.sub(" ", "\n".join(lines))
    return len(text.split())


def _strip_marker(line: str) -> str:
    return _BULLET.sub("", line).strip()


def truncate_to_limits(body: str, limits: DensityLimits = DensityLimits()) -> TruncationResult:
    kept: list[str] = []
    overflow: list[str] = []
    bullets = 0
    table_rows = 0
    in_table = False
    truncated = False

    for line in body.split("\n"):
        stripped = line.strip()

        if stripped.startswith("|") and stripped.endswith("|"):
            if _TABLE_SEPARATOR.match(stripped) or not in_table:
                # separator, or the header row opening a table
                in_table = True
                kept.append(line)
                continue
            table_rows += 1
            if table_rows <= limits.max_table_rows:
                kept.append(line)
            else:
                overflow.append(line)
                truncated = True
            continue

        if in_table:
            in_table = False

        if _BULLET.match(line):
            bullets += 1
            if bullets <= limits.max_bullets:
                kept.append(line)
            else:
                overflow.append(_strip_marker(line))
                truncated = True
            continue

        kept.append(line)

    result = "\n".join(kept)
    # Over the word limit is flagged, never cut mid-sentence
    if count_content_words(result) > limits.max_words:
        truncated = True

    return TruncationResult(
        body=result,
        overflow="Additional details: " + "; ".join(overflow) if overflow else "",
        was_truncated=truncated,
    )


def passes_density_check(body: str, limits: DensityLimits = DensityLimits()) -> bool:
    bullets = sum(1 for ln in body.split("\n") if _BULLET.match(ln))
    table_rows = 0
    in_table = False
    for ln in body.split("\n"):
        s = ln.strip()
        if s.startswith("|") and s.endswith("|"):
            if _TABLE_SEPARATOR.match(s) or not in_table:
                in_table = True
            else:
                table_rows += 1
        else:
            in_table = False
    return (
        bullets <= limits.max_bullets
        and table_rows <= limits.max_table_rows
        and count_content_words(body) <= limits.max_words
    )
