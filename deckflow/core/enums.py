"""
Closed enumerations shared by models, shapes and the pipeline.
"""

from enum import Enum


class SlideType(str, Enum):
    TITLE = "TITLE"
    PROBLEM = "PROBLEM"
    SOLUTION = "SOLUTION"
    ARCHITECTURE = "ARCHITECTURE"
    PROCESS = "PROCESS"
    COMPARISON = "COMPARISON"
    DATA_METRICS = "DATA_METRICS"
    CTA = "CTA"
    CONTENT = "CONTENT"
    QUOTE = "QUOTE"
    VISUAL_HUMOR = "VISUAL_HUMOR"
    OUTLINE = "OUTLINE"
    TEAM = "TEAM"
    TIMELINE = "TIMELINE"
    SECTION_DIVIDER = "SECTION_DIVIDER"
    METRICS_HIGHLIGHT = "METRICS_HIGHLIGHT"
    FEATURE_GRID = "FEATURE_GRID"
    PRODUCT_SHOWCASE = "PRODUCT_SHOWCASE"
    LOGO_WALL = "LOGO_WALL"
    MARKET_SIZING = "MARKET_SIZING"
    SPLIT_STATEMENT = "SPLIT_STATEMENT"
    MATRIX_2X2 = "MATRIX_2X2"
    WATERFALL = "WATERFALL"
    FUNNEL = "FUNNEL"
    COMPETITIVE_MATRIX = "COMPETITIVE_MATRIX"
    ROADMAP = "ROADMAP"
    PRICING_TABLE = "PRICING_TABLE"
    UNIT_ECONOMICS = "UNIT_ECONOMICS"
    SWOT = "SWOT"
    THREE_PILLARS = "THREE_PILLARS"
    HOOK = "HOOK"
    BEFORE_AFTER = "BEFORE_AFTER"
    SOCIAL_PROOF = "SOCIAL_PROOF"
    OBJECTION_HANDLER = "OBJECTION_HANDLER"
    FAQ = "FAQ"
    VERDICT = "VERDICT"
    COHORT_TABLE = "COHORT_TABLE"
    PROGRESS_TRACKER = "PROGRESS_TRACKER"
    CASE_STUDY = "CASE_STUDY"


# Slides that are meant to be sparse: no density review, empty body allowed
MINIMAL_SLIDE_TYPES = frozenset({SlideType.VISUAL_HUMOR, SlideType.SECTION_DIVIDER})

# Outline entries of these types may have no bullet points
BULLETLESS_SLIDE_TYPES = frozenset({SlideType.SECTION_DIVIDER, SlideType.LOGO_WALL})

# Per-slide retrieval is prefetched for these before the generation loop
DATA_BEARING_SLIDE_TYPES = frozenset({
    SlideType.DATA_METRICS,
    SlideType.CONTENT,
    SlideType.PROBLEM,
    SlideType.SOLUTION,
    SlideType.COMPARISON,
})

# The fact checker also looks at case studies
FACT_CHECKED_SLIDE_TYPES = DATA_BEARING_SLIDE_TYPES | {SlideType.CASE_STUDY}


class PresentationStatus(str, Enum):
    DRAFT = "DRAFT"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    COMMITTED = "COMMITTED"
    RELEASED = "RELEASED"


class Tier(str, Enum):
    FREE = "FREE"
    STARTER = "STARTER"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"


class PresentationType(str, Enum):
    STANDARD = "STANDARD"
    VC_PITCH = "VC_PITCH"
    TECHNICAL = "TECHNICAL"
    EXECUTIVE = "EXECUTIVE"


# (min, max) slide counts requested from the outline planner
DEFAULT_SLIDE_RANGES: dict[PresentationType, tuple[int, int]] = {
    PresentationType.STANDARD: (8, 16),
    PresentationType.VC_PITCH: (10, 14),
    PresentationType.TECHNICAL: (12, 18),
    PresentationType.EXECUTIVE: (8, 12),
}


class DeckArchetype(str, Enum):
    INVESTOR_PITCH = "INVESTOR_PITCH"
    STRATEGY_BRIEF = "STRATEGY_BRIEF"
    KEYNOTE = "KEYNOTE"
    BOARD_UPDATE = "BOARD_UPDATE"
    CASE_STUDY = "CASE_STUDY"
    SALES_DECK = "SALES_DECK"
    PRODUCT_LAUNCH = "PRODUCT_LAUNCH"
    TECHNICAL_DEEP_DIVE = "TECHNICAL_DEEP_DIVE"
    CULTURE_DECK = "CULTURE_DECK"
    TRAINING_WORKSHOP = "TRAINING_WORKSHOP"


class FeedbackType(str, Enum):
    VIOLATION = "VIOLATION"
    CORRECTION = "CORRECTION"
    RULE = "RULE"


class FeedbackCategory(str, Enum):
    DENSITY = "density"
    TYPOGRAPHY = "typography"
    CONCEPT = "concept"
    STYLE = "style"
    TONE = "tone"
