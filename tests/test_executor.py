import pytest

from deckflow.core.errors import GenerationExhausted
from deckflow.services.llm import ModelTier
from deckflow.services.shapes import OUTLINE, SLIDE_CONTENT
from deckflow.services.structured import INVALID_JSON_NUDGE, StepExecutor, parse_json

from tests.stubs import FIVE_SLIDES, StubGenerator, prompt_title, slide_content

GOOD_SLIDE = {"title": "Market", "body": "- a\n- b", "speaker_notes": "n", "image_prompt_hint": ""}
MESSAGES = [{"role": "user", "content": "go"}]


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def executor_for(generator, sleep=None, retry_delay=1.0):
    return StepExecutor(
        generator,
        retry_delay=retry_delay,
        model_resolver=lambda tier: f"model-{tier.value}",
        sleep=sleep or RecordingSleep(),
    )


def test_parse_json_strips_code_fences():
    assert parse_json('```json\n{"a": 1}\n```') == {"a": 1}


async def test_valid_first_attempt():
    generator = StubGenerator({"slide_content": GOOD_SLIDE})
    result = await executor_for(generator).run(MESSAGES, ModelTier.STANDARD, SLIDE_CONTENT)
    assert result.title == "Market"
    assert generator.count("slide_content") == 1


async def test_invalid_json_is_fed_back_with_nudge():
    generator = StubGenerator({"slide_content": ["not json at all", GOOD_SLIDE]})
    result = await executor_for(generator).run(MESSAGES, ModelTier.STANDARD, SLIDE_CONTENT)

    assert result.body == "- a\n- b"
    _, retry_messages = generator.calls[1]
    assert retry_messages[-2] == {"role": "assistant", "content": "not json at all"}
    assert retry_messages[-1]["content"] == INVALID_JSON_NUDGE


async def test_shape_mismatch_names_the_problem():
    generator = StubGenerator({"slide_content": [{"body": "no title"}, GOOD_SLIDE]})
    await executor_for(generator).run(MESSAGES, ModelTier.STANDARD, SLIDE_CONTENT)

    _, retry_messages = generator.calls[1]
    assert "title" in retry_messages[-1]["content"]
    assert "missing or incorrect fields" in retry_messages[-1]["content"]


async def test_outline_entries_need_bullets_unless_bulletless():
    bad = {"title": "Deck", "slides": [
        {"slide_number": 1, "title": "Problem", "bullet_points": [], "slide_type": "PROBLEM"},
    ]}
    divider = {"title": "Deck", "slides": [
        {"slide_number": 1, "title": "Part Two", "bullet_points": [], "slide_type": "SECTION_DIVIDER"},
    ]}
    generator = StubGenerator({"outline": [bad, divider]})
    result = await executor_for(generator).run(MESSAGES, ModelTier.STANDARD, OUTLINE)
    assert result.slides[0].title == "Part Two"
    assert generator.count("outline") == 2


async def test_exhaustion_raises_after_all_attempts():
    generator = StubGenerator({"slide_content": "{{{"})
    with pytest.raises(GenerationExhausted) as info:
        await executor_for(generator).run(MESSAGES, ModelTier.STANDARD, SLIDE_CONTENT, max_retries=2)

    assert info.value.attempts == 3
    assert info.value.step == "slide_content"
    assert generator.count("slide_content") == 3


async def test_transport_errors_back_off_linearly():
    sleep = RecordingSleep()
    generator = StubGenerator({"outline": [ConnectionError("down"), ConnectionError("down"), FIVE_SLIDES]})
    result = await executor_for(generator, sleep=sleep, retry_delay=0.5).run(
        MESSAGES, ModelTier.STANDARD, OUTLINE,
    )

    assert len(result.slides) == 5
    assert sleep.delays == [0.5, 1.0]
    # transport retries resend the same messages
    assert generator.calls[2][1] == MESSAGES


async def test_no_sleep_after_final_transport_failure():
    sleep = RecordingSleep()
    generator = StubGenerator({"outline": ConnectionError("down")})
    with pytest.raises(GenerationExhausted):
        await executor_for(generator, sleep=sleep).run(MESSAGES, ModelTier.STANDARD, OUTLINE, max_retries=1)
    assert sleep.delays == [1.0]


async def test_tier_selects_model():
    generator = StubGenerator({"slide_content": GOOD_SLIDE})
    models = []

    async def generate(messages, model, purpose=""):
        models.append(model)
        return await StubGenerator.generate(generator, messages, model, purpose)

    generator.generate = generate
    await executor_for(generator).run(MESSAGES, ModelTier.DEEP, SLIDE_CONTENT)
    assert models == ["model-deep"]


async def test_slide_fault_keyed_on_title_persists_across_retries():
    messages = [
        {"role": "system", "content": "You write the content of one presentation slide."},
        {"role": "user", "content": "Generate full content for slide 3 of 5:\nTitle: Assisted Triage\nType: SOLUTION"},
    ]
    generator = StubGenerator({
        "slide_content": lambda m: "not json" if prompt_title(m) == "Assisted Triage" else slide_content(m),
    })

    with pytest.raises(GenerationExhausted):
        await executor_for(generator).run(messages, ModelTier.STANDARD, SLIDE_CONTENT, max_retries=2)

    assert generator.count("slide_content") == 3
    assert all(prompt_title(m) == "Assisted Triage" for _, m in generator.calls)
