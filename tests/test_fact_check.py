from deckflow.agents.fact_check.handler import FactCheckAgent, apply_correction
from deckflow.services.shapes import FactCheckShape


def test_exact_match_replaces_first_occurrence_only():
    body = "Revenue grew 40% in 2024. Costs grew 40% too."
    assert apply_correction(body, "40%", "25%") == "Revenue grew 25% in 2024. Costs grew 40% too."


def test_fuzzy_match_ignores_case_and_whitespace():
    body = "- Market size is\n  $5B globally"
    assert apply_correction(body, "market size is $5b", "Market size is $3B") == (
        "- Market size is $3B globally"
    )


def test_unlocatable_claim_is_skipped():
    assert apply_correction("Nothing here", "revenue doubled", "revenue grew 10%") is None
    assert apply_correction("Anything", "   ", "x") is None


def test_corrected_body_applies_only_contradicted_claims():
    result = FactCheckShape.model_validate({
        "verdict": "HAS_ERRORS",
        "score": 0.4,
        "claims": [
            {"claim": "120 customers", "status": "contradicted", "correction": "80 customers"},
            {"claim": "3 regions", "status": "unverified", "correction": "2 regions"},
            {"claim": "missing claim", "status": "contradicted", "correction": "ignored"},
            {"claim": "NPS of 70", "status": "contradicted", "correction": None},
        ],
    })
    body = "- 120 customers\n- 3 regions\n- NPS of 70"

    assert FactCheckAgent.corrected_body(body, result) == "- 80 customers\n- 3 regions\n- NPS of 70"


def test_corrected_body_requires_errors_verdict():
    result = FactCheckShape.model_validate({
        "verdict": "NEEDS_REVIEW",
        "score": 0.6,
        "claims": [{"claim": "a", "status": "contradicted", "correction": "b"}],
    })
    assert FactCheckAgent.corrected_body("a", result) is None


def test_neutral_result():
    neutral = FactCheckAgent().neutral()
    assert neutral.verdict == "VERIFIED"
    assert neutral.score == 0.8
    assert neutral.claims == []
