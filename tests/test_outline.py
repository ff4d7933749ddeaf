from deckflow.services.llm import ModelTier
from deckflow.services.outline import (
    AGENDA_LABEL,
    AGENDA_TITLE,
    GenerationConfig,
    OutlineStage,
    PendingOutline,
    SlidePlan,
    SlidePlanItem,
    apply_section_labels,
    inject_agenda,
    is_approval,
    post_process,
    truncate_plan,
)
from deckflow.core.ttl_store import TtlStore
from deckflow.services.structured import StepExecutor

from tests.stubs import FIVE_SLIDES, StubGenerator


def plan_items(*specs):
    return [
        SlidePlanItem(slide_number=n, title=title, bullet_points=[f"{title} point"], slide_type=slide_type)
        for n, (title, slide_type) in enumerate(specs, start=1)
    ]


def sample_plan():
    return SlidePlan(title="Deck", slides=plan_items(
        ("Deck", "TITLE"),
        ("Problem", "PROBLEM"),
        ("Metrics", "DATA_METRICS"),
        ("Solution", "SOLUTION"),
        ("Ask", "CTA"),
    ))


def test_truncate_plan_caps_and_renumbers():
    items = truncate_plan(sample_plan().slides, 3)
    assert [i.title for i in items] == ["Deck", "Problem", "Metrics"]
    assert [i.slide_number for i in items] == [1, 2, 3]
    assert len(truncate_plan(sample_plan().slides, None)) == 5


def test_section_labels_backfill_from_type():
    items = plan_items(("Metrics", "DATA_METRICS"), ("Why", "PROBLEM"))
    items[1].section_label = "Context"
    apply_section_labels(items)
    assert items[0].section_label == "DATA METRICS"
    assert items[1].section_label == "Context"


def test_agenda_goes_second_and_lists_content_titles():
    items = inject_agenda(sample_plan().slides, with_label=True)

    agenda = items[1]
    assert agenda.title == AGENDA_TITLE
    assert agenda.slide_type == "OUTLINE"
    assert agenda.section_label == AGENDA_LABEL
    assert agenda.body == "1. Problem\n2. Metrics\n3. Solution"
    assert [i.slide_number for i in items] == list(range(1, 7))


def test_agenda_not_added_twice():
    items = inject_agenda(sample_plan().slides)
    assert len(inject_agenda(items)) == len(items)


def test_post_process_order_and_copy():
    plan = sample_plan()
    config = GenerationConfig(show_section_labels=True, show_agenda=True)

    result = post_process(plan, 3, config)

    assert [i.title for i in result.slides] == ["Deck", AGENDA_TITLE, "Problem", "Metrics"]
    assert result.slides[3].section_label == "DATA METRICS"
    # the input plan is left alone
    assert plan.slides[1].slide_number == 2
    assert plan.slides[1].section_label is None


def test_slide_range_defaults_per_type():
    assert GenerationConfig().slide_range() == (8, 16)
    assert GenerationConfig(presentation_type="VC_PITCH").slide_range() == (10, 14)
    assert GenerationConfig(presentation_type="nonsense", max_slides=6).slide_range() == (8, 6)


def test_is_approval():
    assert is_approval("Looks good, go")
    assert is_approval("  YES ")
    assert not is_approval("make slide 3 shorter")


def test_to_markdown_mentions_every_slide():
    text = sample_plan().to_markdown()
    assert "**Slide 5: Ask** _(CTA)_" in text
    assert "5 slides" in text


async def test_outline_stage_generates_and_parks_plans():
    generator = StubGenerator({"outline": FIVE_SLIDES})
    store = TtlStore(60)
    stage = OutlineStage(StepExecutor(generator, retry_delay=0), pending=store)

    plan = await stage.generate("AI in healthcare", GenerationConfig(min_slides=4, max_slides=6))

    assert plan.title == "AI in Healthcare"
    assert [s.slide_type for s in plan.slides][:2] == ["TITLE", "PROBLEM"]
    prompt = generator.calls[0][1][-1]["content"]
    assert "AI in healthcare" in prompt

    stage.store_pending("p1", PendingOutline("u1", "AI in healthcare", plan, GenerationConfig()))
    assert stage.has_pending_outline("p1")
    assert stage.pop_pending("p1").plan is plan
    assert not stage.has_pending_outline("p1")
