from deckflow.orchestrator.base_agent import AgentStatus
from deckflow.orchestrator import state
from deckflow.agents.presentation.handler import ASK_TOPIC

from tests.conftest import USER_ID, add_user

START = {"config": {"min_slides": 3, "max_slides": 8, "unknown_key": True}}


async def test_full_conversation(session_factory, services, theme_id, db):
    await add_user(session_factory, balance=5)
    agent = services.agents.get("presentation")

    drafted = await agent.handle("AI in healthcare", START, db, USER_ID)
    assert drafted.status == AgentStatus.AWAITING_CONFIRMATION
    assert "**Slide 5: Next Steps**" in drafted.content
    presentation_id = drafted.state_update["presentation_id"]
    assert drafted.state_update["topic"] == "AI in healthcare"

    built = await agent.handle("approve", drafted.state_update, db, USER_ID)
    assert built.status == AgentStatus.AWAITING_VALIDATION
    assert 'Generated 5 slides for "AI in Healthcare"' in built.content
    assert "**Review slide 1: AI in Healthcare**" in built.content

    accepted = await agent.handle("accept", built.state_update, db, USER_ID)
    assert accepted.content.startswith("Slide 1 accepted.")
    assert "Review slide 2: The Diagnosis Gap" in accepted.content

    rejected = await agent.handle("Reject.", accepted.state_update, db, USER_ID)
    assert rejected.content.startswith("Slide 2 removed.")
    assert "Review slide 2: Assisted Triage" in rejected.content

    edited = await agent.handle("edit: - triage in minutes", rejected.state_update, db, USER_ID)
    assert edited.content.startswith("Slide 2 updated with your edits.")
    assert edited.metadata["slide_updated"]

    unclear = await agent.handle("what now?", edited.state_update, db, USER_ID)
    assert unclear.needs_input == "accept / reject / edit"
    assert "Review slide 3" in unclear.content

    await agent.handle("ok", unclear.state_update, db, USER_ID)
    done = await agent.handle("keep", unclear.state_update, db, USER_ID)
    assert done.is_complete
    assert done.status == AgentStatus.COMPLETE
    assert "All slides reviewed" in done.content

    await db.commit()
    slides = await state.list_slides(db, presentation_id)
    assert [s.slide_number for s in slides] == [1, 2, 3, 4]
    assert slides[1].body == "- triage in minutes"


async def test_short_message_asks_for_topic(services, db):
    response = await services.agents.get("presentation").handle("hi", {}, db, USER_ID)
    assert response.content == ASK_TOPIC
    assert response.status == AgentStatus.COLLECTING_INPUT
    assert response.state_update["_step"] == "collect_topic"


async def test_revision_regenerates_outline(session_factory, services, generator, theme_id, db):
    await add_user(session_factory, balance=5)
    agent = services.agents.get("presentation")

    drafted = await agent.handle("AI in healthcare", START, db, USER_ID)
    revised = await agent.handle("make it shorter", drafted.state_update, db, USER_ID)

    assert revised.status == AgentStatus.AWAITING_CONFIRMATION
    assert revised.state_update["presentation_id"] == drafted.state_update["presentation_id"]
    assert generator.count("outline") == 2
    last_prompt = [m for p, m in generator.calls if p == "outline"][-1][-1]["content"]
    assert "Requested changes: make it shorter" in last_prompt
    assert await services.ledger.get_available_balance(USER_ID) == 3


async def test_auto_approve_toggle(session_factory, services, theme_id, db):
    await add_user(session_factory, balance=5)
    agent = services.agents.get("presentation")

    orphan = await agent.handle("auto-approve on", {}, db, USER_ID)
    assert orphan.content.startswith("Start a deck first")

    drafted = await agent.handle("AI in healthcare", START, db, USER_ID)
    toggled = await agent.handle("/autoapprove ON", drafted.state_update, db, USER_ID)
    presentation_id = drafted.state_update["presentation_id"]
    assert "enabled" in toggled.content
    assert services.gate.is_auto_approve_enabled(presentation_id)

    built = await agent.handle("looks good", toggled.state_update, db, USER_ID)
    assert built.is_complete
    assert built.status == AgentStatus.COMPLETE


async def test_pipeline_errors_become_error_responses(session_factory, services, theme_id, db):
    await add_user(session_factory, balance=0)

    response = await services.agents.get("presentation").handle("AI in healthcare", START, db, USER_ID)

    assert response.status == AgentStatus.ERROR
    assert response.content.startswith("Sorry, I couldn't do that: Insufficient credits")
    assert response.metadata["error"] == "InsufficientBalanceError"
