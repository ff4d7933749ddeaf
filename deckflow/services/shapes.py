"""
Output shapes for every generative step, plus the validator capability.

Each step (outline, slide content, density review, style, narrative,
fact check) declares a pydantic model. ShapeValidator wraps one model so
the step executor can stay generic over the result type.
"""

from typing import Annotated, Any, Generic, Literal, Optional, Protocol, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError, model_validator

from ..core.enums import BULLETLESS_SLIDE_TYPES, SlideType

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class ShapeError(ValueError):
    """Parsed JSON did not match the expected shape."""

    def __init__(self, shape: str, problems: list[str]):
        super().__init__(f"{shape}: " + "; ".join(problems))
        self.shape = shape
        self.problems = problems


class Validator(Protocol[T]):
    name: str

    def validate(self, data: Any) -> T:
        """Return the typed value or raise ShapeError."""
        ...


class ShapeValidator(Generic[M]):
    """Validator backed by a pydantic model."""

    def __init__(self, model: type[M], name: Optional[str] = None):
        self.model = model
        self.name = name or model.__name__

    def validate(self, data: Any) -> M:
        try:
            return self.model.model_validate(data)
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            ]
            raise ShapeError(self.name, problems) from e


class _Shape(BaseModel):
    model_config = ConfigDict(extra="ignore")


NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


# ── Outline ──────────────────────────────────────────────────────────

class OutlineSlideShape(_Shape):
    slide_number: int
    title: NonBlank
    bullet_points: list[str] = Field(default_factory=list)
    slide_type: SlideType
    section_label: Optional[str] = None

    @model_validator(mode="after")
    def check_bullets(self):
        if not self.bullet_points and self.slide_type not in BULLETLESS_SLIDE_TYPES:
            raise ValueError(f"slide {self.slide_number} ({self.slide_type.value}) needs bullet points")
        return self


class OutlineShape(_Shape):
    title: NonBlank
    slides: list[OutlineSlideShape] = Field(min_length=1)


# ── Slide content ────────────────────────────────────────────────────

class SlideContentShape(_Shape):
    title: NonBlank
    body: str
    speaker_notes: str = ""
    image_prompt_hint: str = ""


# ── Content-density reviewer ─────────────────────────────────────────

class ReviewIssueShape(_Shape):
    rule: str
    severity: Literal["warning", "error"]
    message: str


class SplitShape(_Shape):
    title: str
    body: str


class ContentReviewShape(_Shape):
    verdict: Literal["PASS", "NEEDS_SPLIT"]
    score: float = Field(ge=0.0, le=1.0)
    issues: list[ReviewIssueShape] = Field(default_factory=list)
    suggested_splits: list[SplitShape] = Field(default_factory=list)


# ── Style enforcer ───────────────────────────────────────────────────

class StyleIssueShape(_Shape):
    rule: str
    severity: Literal["warning", "error"]
    message: str
    fix: str = ""


class StyleResultShape(_Shape):
    verdict: Literal["PASS", "NEEDS_FIX"]
    score: float = Field(ge=0.0, le=1.0)
    issues: list[StyleIssueShape] = Field(default_factory=list)
    rewritten_title: Optional[str] = None
    rewritten_body: Optional[str] = None


# ── Narrative coherence ──────────────────────────────────────────────

class NarrativeIssueShape(_Shape):
    type: str
    severity: Literal["warning", "error"]
    slide_numbers: list[int] = Field(default_factory=list)
    message: str
    suggestion: str = ""


class ReorderShape(_Shape):
    from_: int = Field(alias="from")
    to: int
    reason: str = ""


class NarrativeShape(_Shape):
    overall_score: float = Field(ge=0.0, le=1.0)
    arc_assessment: str = ""
    issues: list[NarrativeIssueShape] = Field(default_factory=list)
    suggested_reorders: list[ReorderShape] = Field(default_factory=list)


# ── Fact checker ─────────────────────────────────────────────────────

class ClaimShape(_Shape):
    claim: str
    status: Literal["verified", "unverified", "contradicted", "vague"]
    kb_evidence: Optional[str] = None
    correction: Optional[str] = None


class FactCheckShape(_Shape):
    verdict: Literal["VERIFIED", "NEEDS_REVIEW", "HAS_ERRORS"]
    score: float = Field(ge=0.0, le=1.0)
    claims: list[ClaimShape] = Field(default_factory=list)


OUTLINE = ShapeValidator(OutlineShape, "outline")
SLIDE_CONTENT = ShapeValidator(SlideContentShape, "slide_content")
CONTENT_REVIEW = ShapeValidator(ContentReviewShape, "content_review")
STYLE_RESULT = ShapeValidator(StyleResultShape, "style")
NARRATIVE = ShapeValidator(NarrativeShape, "narrative")
FACT_CHECK = ShapeValidator(FactCheckShape, "fact_check")
