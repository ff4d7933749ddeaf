"""
Stub generator and canned model outputs for pipeline tests.
"""

import json
import re
from typing import Any, Callable, Union

_TITLE = re.compile(r"^Title: (.+)$", re.MULTILINE)

Response = Union[str, dict, BaseException, Callable[[list[dict]], Any]]


class StubGenerator:
    """
    Generator keyed by step purpose ("outline", "slide_content", ...).

    A purpose maps to a single response, a list of responses (consumed
    in order, the last one repeating) or a callable taking the messages.
    Dicts are JSON-encoded; exceptions are raised.
    """

    def __init__(self, responses: dict[str, Union[Response, list[Response]]] = None):
        self.responses = {
            purpose: list(value) if isinstance(value, list) else value
            for purpose, value in (responses or {}).items()
        }
        self.calls: list[tuple[str, list[dict]]] = []

    async def generate(self, messages: list[dict], model: str, purpose: str = "") -> str:
        self.calls.append((purpose, list(messages)))
        source = self.responses.get(purpose)
        if source is None:
            raise RuntimeError(f"no stub response for {purpose!r}")

        if isinstance(source, list):
            value = source.pop(0) if len(source) > 1 else source[0]
        else:
            value = source
        if callable(value) and not isinstance(value, BaseException):
            value = value(messages)
        if isinstance(value, BaseException):
            raise value
        return value if isinstance(value, str) else json.dumps(value)

    def count(self, purpose: str) -> int:
        return sum(1 for p, _ in self.calls if p == purpose)


def prompt_title(messages: list[dict]) -> str:
    """Planned title from the original request, which stays first across retry nudges."""
    request = next((m["content"] for m in messages if m["role"] == "user"), "")
    match = _TITLE.search(request)
    return match.group(1).strip() if match else "Untitled"


def outline(title: str, slides: list[tuple[str, str]]) -> dict:
    """Outline JSON from (title, slide_type) pairs."""
    return {
        "title": title,
        "slides": [
            {
                "slide_number": n,
                "title": slide_title,
                "bullet_points": [f"{slide_title} point"],
                "slide_type": slide_type,
            }
            for n, (slide_title, slide_type) in enumerate(slides, start=1)
        ],
    }


FIVE_SLIDES = outline("AI in Healthcare", [
    ("AI in Healthcare", "TITLE"),
    ("The Diagnosis Gap", "PROBLEM"),
    ("Assisted Triage", "SOLUTION"),
    ("Adoption So Far", "CONTENT"),
    ("Next Steps", "CTA"),
])


def slide_content(messages: list[dict]) -> dict:
    """Echo the planned title with a short two-bullet body."""
    title = prompt_title(messages)
    return {
        "title": title,
        "body": f"- {title} first point\n- {title} second point",
        "speaker_notes": f"Talk about {title}.",
        "image_prompt_hint": "",
    }


REVIEW_PASS = {"verdict": "PASS", "score": 0.9, "issues": [], "suggested_splits": []}
STYLE_PASS = {"verdict": "PASS", "score": 0.9, "issues": []}
NARRATIVE_OK = {"overall_score": 0.85, "arc_assessment": "Clear arc.", "issues": [], "suggested_reorders": []}
FACTS_OK = {"verdict": "VERIFIED", "score": 0.95, "claims": []}


def happy_responses(**overrides) -> dict:
    responses = {
        "outline": FIVE_SLIDES,
        "slide_content": slide_content,
        "content_review": REVIEW_PASS,
        "style": STYLE_PASS,
        "narrative": NARRATIVE_OK,
        "fact_check": FACTS_OK,
    }
    responses.update(overrides)
    return responses
