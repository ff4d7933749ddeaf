from sqlalchemy import func, select

from deckflow.core.enums import FeedbackCategory, FeedbackType
from deckflow.models.feedback import FeedbackEntry
from deckflow.services import feedback_log

from tests.conftest import USER_ID


async def count(db, feedback_type: FeedbackType) -> int:
    return await db.scalar(
        select(func.count()).select_from(FeedbackEntry).where(FeedbackEntry.feedback_type == feedback_type.value)
    )


def test_is_similar():
    assert feedback_log.is_similar("Market size slide", "market size numbers slide")
    assert not feedback_log.is_similar("Market size", "Team hiring plan")
    assert not feedback_log.is_similar("", "anything")


async def test_near_duplicate_correction_replaces_latest(db):
    await feedback_log.log_correction(db, USER_ID, "p1", "s1", FeedbackCategory.STYLE, "Revenue grew fast", "Revenue grew 40%")
    await feedback_log.log_correction(db, USER_ID, "p1", "s2", FeedbackCategory.STYLE, "revenue grew fast!", "Revenue grew 45%")
    await db.commit()

    assert await count(db, FeedbackType.CORRECTION) == 1
    entry = await db.scalar(select(FeedbackEntry))
    assert entry.slide_id == "s2"
    assert entry.corrected_content == "Revenue grew 45%"


async def test_three_corrections_codify_one_rule(db):
    originals = ["Alpha beta gamma", "Delta epsilon zeta", "Eta theta iota", "Kappa lambda mu"]
    for n, original in enumerate(originals):
        await feedback_log.log_correction(
            db, USER_ID, "p1", f"s{n}", FeedbackCategory.DENSITY, original, f"short version {n}",
        )
    await db.commit()

    assert await count(db, FeedbackType.CORRECTION) == 4
    assert await count(db, FeedbackType.RULE) == 1

    rules = await feedback_log.get_rules(db, USER_ID)
    assert len(rules) == 1
    assert rules[0]["category"] == "density"
    assert rules[0]["rule"].startswith("User prefers: short version 2")
    assert "auto-codified from 3 corrections in density" in rules[0]["rule"]

    block = feedback_log.rules_block(rules)
    assert "Learned preferences" in block
    assert "- [density] User prefers:" in block


async def test_codification_can_be_disabled(db, env):
    env.setenv("FF_ENABLE_RULE_CODIFICATION", "false")
    from deckflow.core.flags import get_flags
    get_flags.cache_clear()

    for n, original in enumerate(["Alpha beta", "Gamma delta", "Epsilon zeta"]):
        await feedback_log.log_correction(db, USER_ID, "p1", None, FeedbackCategory.TONE, original, f"fix {n}")

    assert await count(db, FeedbackType.RULE) == 0


def test_rules_block_empty():
    assert feedback_log.rules_block([]) == ""
