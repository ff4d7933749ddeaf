"""
Prompt builders for each generative step.

Each builder returns a chat message list. Output keys are snake_case and
mirror the shapes in services/shapes.py.
"""

from collections import deque
from typing import Iterable, Optional

from ..core.enums import SlideType

SLIDE_TYPE_LIST = ", ".join(t.value for t in SlideType)


def _msgs(system: str, user: str) -> list[dict]:
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


# ── Outline ──────────────────────────────────────────────────────────

def outline_messages(
    topic: str,
    min_slides: int,
    max_slides: int,
    kb_context: str = "",
    rules: str = "",
) -> list[dict]:
    system = (
        "You plan presentation outlines.\n"
        f"Return JSON: {{\"title\": str, \"slides\": [{{\"slide_number\": int, \"title\": str, "
        f"\"bullet_points\": [str], \"slide_type\": str, \"section_label\": str|null}}]}}.\n"
        f"Use between {min_slides} and {max_slides} slides. Start with a TITLE slide and end with a CTA slide.\n"
        f"slide_type must be one of: {SLIDE_TYPE_LIST}.\n"
        "Each slide makes exactly one point. Only output JSON."
    ) + rules
    user = f"Topic: {topic}"
    if kb_context:
        user += f"\n\nReference material from the user's knowledge base:\n{kb_context}"
    return _msgs(system, user)


# ── Slide content ────────────────────────────────────────────────────

def prior_slides_block(prior: deque, total_before: int) -> str:
    """
    Summaries of the most recent realized slides: title plus the first
    three body lines. `total_before` is how many slides precede this one,
    so the numbering stays right when the window has dropped older ones.
    """
    if not prior:
        return ""
    first = total_before - len(prior) + 1
    lines = []
    for offset, item in enumerate(prior):
        preview = "; ".join(ln.strip() for ln in item["body"].split("\n")[:3] if ln.strip())
        lines.append(f"  {first + offset}. {item['title']} — {preview}")
    return "\nPrevious slides (avoid repeating their content):\n" + "\n".join(lines) + "\n"


def slide_messages(
    slide_number: int,
    total_slides: int,
    title: str,
    bullet_points: Iterable[str],
    slide_type: str,
    prior: deque,
    total_before: int,
    kb_context: str = "",
    rules: str = "",
) -> list[dict]:
    system = (
        "You write the content of one presentation slide.\n"
        "Return JSON: {\"title\": str, \"body\": str (markdown bullets or a small table), "
        "\"speaker_notes\": str, \"image_prompt_hint\": str}.\n"
        "Keep the body to at most 4 bullets and 50 words. Only output JSON."
    ) + rules
    bullets = "\n".join(f"- {b}" for b in bullet_points)
    user = (
        f"Generate full content for slide {slide_number} of {total_slides}:\n"
        f"Title: {title}\nType: {slide_type}\nOutline bullets:\n{bullets}"
        f"{prior_slides_block(prior, total_before)}"
    )
    if kb_context:
        user += f"\nRelevant facts from the knowledge base:\n{kb_context}"
    return _msgs(system, user)


# ── Content-density reviewer ─────────────────────────────────────────

def content_review_messages(title: str, body: str, speaker_notes: str, slide_type: str) -> list[dict]:
    system = (
        "You review a slide for information density: one idea per slide, "
        "at most 5 bullets, at most 80 words.\n"
        "Return JSON: {\"verdict\": \"PASS\"|\"NEEDS_SPLIT\", \"score\": 0..1, "
        "\"issues\": [{\"rule\": str, \"severity\": \"warning\"|\"error\", \"message\": str}], "
        "\"suggested_splits\": [{\"title\": str, \"body\": str}]}.\n"
        "Only suggest splits with verdict NEEDS_SPLIT. Only output JSON."
    )
    user = (
        f"Review this slide:\n\nTitle: {title}\nType: {slide_type}\n"
        f"Body:\n{body}\nSpeaker Notes: {speaker_notes}"
    )
    return _msgs(system, user)


# ── Quality agents ───────────────────────────────────────────────────

def style_messages(slide: dict, theme_name: str, extra_rules: Optional[list[str]] = None) -> list[dict]:
    rules = "".join(f"\n- {r}" for r in (extra_rules or []))
    system = (
        f"You enforce the visual and writing style of the '{theme_name}' theme.\n"
        "Return JSON: {\"verdict\": \"PASS\"|\"NEEDS_FIX\", \"score\": 0..1, "
        "\"issues\": [{\"rule\": str, \"severity\": \"warning\"|\"error\", \"message\": str, \"fix\": str}], "
        "\"rewritten_title\": str|null, \"rewritten_body\": str|null}.\n"
        "Only rewrite when verdict is NEEDS_FIX. Only output JSON."
    )
    if rules:
        system += f"\nAdditional rules:{rules}"
    user = (
        f"Review this slide for theme compliance:\n\n"
        f"Slide {slide['slide_number']} ({slide['slide_type']}):\n"
        f"Title: {slide['title']}\nBody:\n{slide['body']}\n"
        f"Speaker Notes: {slide.get('speaker_notes') or ''}"
    )
    return _msgs(system, user)


def narrative_summary(slide: dict) -> str:
    body = (slide["body"] or "")[:150].replace("\n", " ")
    return f"Slide {slide['slide_number']} [{slide['slide_type']}]: \"{slide['title']}\"\n  {body}..."


def narrative_messages(
    slides: list[dict], presentation_type: str, extra_rules: Optional[list[str]] = None,
) -> list[dict]:
    rules = "".join(f"\n- {r}" for r in (extra_rules or []))
    system = (
        f"You assess the story arc of a {presentation_type} presentation.\n"
        "Return JSON: {\"overall_score\": 0..1, \"arc_assessment\": str, "
        "\"issues\": [{\"type\": str, \"severity\": \"warning\"|\"error\", \"slide_numbers\": [int], "
        "\"message\": str, \"suggestion\": str}], "
        "\"suggested_reorders\": [{\"from\": int, \"to\": int, \"reason\": str}]}. Only output JSON."
    )
    if rules:
        system += f"\nAdditional rules:{rules}"
    summaries = "\n\n".join(narrative_summary(s) for s in slides)
    user = f"Review the narrative coherence of this {len(slides)}-slide presentation:\n\n{summaries}"
    return _msgs(system, user)


def fact_check_messages(slide: dict, kb_context: str) -> list[dict]:
    system = (
        "You verify factual claims on a slide against the reference material below.\n"
        "Return JSON: {\"verdict\": \"VERIFIED\"|\"NEEDS_REVIEW\"|\"HAS_ERRORS\", \"score\": 0..1, "
        "\"claims\": [{\"claim\": str (exact text from the slide), "
        "\"status\": \"verified\"|\"unverified\"|\"contradicted\"|\"vague\", "
        "\"kb_evidence\": str|null, \"correction\": str|null}]}. Only output JSON.\n\n"
        f"Reference material:\n{kb_context or '(none available)'}"
    )
    user = (
        f"Fact-check this slide:\n\nSlide {slide['slide_number']} ({slide['slide_type']}):\n"
        f"Title: {slide['title']}\nBody:\n{slide['body']}"
    )
    return _msgs(system, user)
