"""
Structural integrity — programmatic checks over the realized deck.

No model call, so it always runs and never degrades:
  - orphaned_split          "(k/n)" title markers with parts missing
  - architecture_overflow   ARCHITECTURE with more than 6 body lines
  - feature_grid_overflow   FEATURE_GRID with more than 6 body lines
  - empty_body              titled slide with a blank body
  - duplicate_title         same title again (case-insensitive)
  - missing_cta             last slide is not a CTA
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Literal

from ...core.enums import MINIMAL_SLIDE_TYPES, SlideType
from ...orchestrator.base_agent import Fix, ReviewAgent

logger = logging.getLogger(__name__)

SPLIT_MARKER = re.compile(r"\((\d+)/(\d+)\)\s*$")
MAX_GRID_LINES = 6

_OVERFLOW_CHECKS = {
    SlideType.ARCHITECTURE.value: ("architecture_overflow", "components"),
    SlideType.FEATURE_GRID.value: ("feature_grid_overflow", "features"),
}
_MINIMAL = {t.value for t in MINIMAL_SLIDE_TYPES}


@dataclass
class StructuralIssue:
    slide_number: int
    check: str
    severity: Literal["warning", "error"]
    message: str


@dataclass
class StructuralResult:
    issues: list[StructuralIssue] = field(default_factory=list)
    fixes: list[Fix] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not any(i.severity == "error" for i in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == "error")


class StructuralAgent(ReviewAgent):
    name = "structural"
    display_name = "Structural Integrity"
    description = "Programmatic checks for split markers, overflow, empty bodies, duplicates and the closing CTA."

    def review(self, slides: list[dict]) -> StructuralResult:
        result = StructuralResult()
        self._check_splits(slides, result)
        self._check_overflow(slides, result)
        self._check_empty(slides, result)
        self._check_duplicates(slides, result)
        self._check_cta(slides, result)
        if result.issues:
            logger.info(
                "Structural: %d issue(s): %s",
                len(result.issues), ", ".join(i.check for i in result.issues),
            )
        return result

    def neutral(self) -> StructuralResult:
        return StructuralResult()

    # ── Checks ───────────────────────────────────────────────────────

    def _check_splits(self, slides: list[dict], result: StructuralResult) -> None:
        groups: dict[str, list[tuple[dict, int, int]]] = defaultdict(list)
        for slide in slides:
            match = SPLIT_MARKER.search(slide["title"])
            if match:
                base = SPLIT_MARKER.sub("", slide["title"]).strip()
                groups[base].append((slide, int(match.group(1)), int(match.group(2))))

        for base, parts in groups.items():
            claimed = parts[0][2]
            if len(parts) >= claimed:
                continue
            for index, (slide, part, _total) in enumerate(parts, start=1):
                result.issues.append(StructuralIssue(
                    slide_number=slide["slide_number"],
                    check="orphaned_split",
                    severity="error",
                    message=(
                        f'Title "{base} ({part}/{claimed})" references {claimed} parts '
                        f"but only {len(parts)} exist"
                    ),
                ))
                fixed_title = base if len(parts) == 1 else f"{base} ({index}/{len(parts)})"
                result.fixes.append(Fix(
                    slide_number=slide["slide_number"],
                    agent=self.name,
                    original_title=slide["title"],
                    original_body=slide["body"],
                    fixed_title=fixed_title,
                    fixed_body=slide["body"],
                ))

    def _check_overflow(self, slides: list[dict], result: StructuralResult) -> None:
        for slide in slides:
            check = _OVERFLOW_CHECKS.get(slide["slide_type"])
            if check is None:
                continue
            lines = [ln for ln in (slide["body"] or "").split("\n") if ln.strip()]
            if len(lines) <= MAX_GRID_LINES:
                continue
            name, noun = check
            result.issues.append(StructuralIssue(
                slide_number=slide["slide_number"],
                check=name,
                severity="warning",
                message=f"{slide['slide_type']} slide has {len(lines)} {noun} (max {MAX_GRID_LINES} rendered)",
            ))
            result.fixes.append(Fix(
                slide_number=slide["slide_number"],
                agent=self.name,
                original_title=slide["title"],
                original_body=slide["body"],
                fixed_title=slide["title"],
                fixed_body="\n".join(lines[:MAX_GRID_LINES]),
            ))

    def _check_empty(self, slides: list[dict], result: StructuralResult) -> None:
        for slide in slides:
            if slide["slide_type"] in _MINIMAL:
                continue
            if slide["title"] and not (slide["body"] or "").strip():
                result.issues.append(StructuralIssue(
                    slide_number=slide["slide_number"],
                    check="empty_body",
                    severity="error",
                    message=f'Slide {slide["slide_number"]} "{slide["title"]}" has an empty body',
                ))

    def _check_duplicates(self, slides: list[dict], result: StructuralResult) -> None:
        seen: dict[str, int] = {}
        for slide in slides:
            key = slide["title"].strip().lower()
            if key in seen:
                result.issues.append(StructuralIssue(
                    slide_number=slide["slide_number"],
                    check="duplicate_title",
                    severity="warning",
                    message=f'Duplicate title "{slide["title"]}" (first used on slide {seen[key]})',
                ))
            else:
                seen[key] = slide["slide_number"]

    def _check_cta(self, slides: list[dict], result: StructuralResult) -> None:
        if not slides:
            return
        last = slides[-1]
        if last["slide_type"] != SlideType.CTA.value:
            result.issues.append(StructuralIssue(
                slide_number=last["slide_number"],
                check="missing_cta",
                severity="warning",
                message=f"Last slide is {last['slide_type']}, not CTA",
            ))
