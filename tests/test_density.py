from deckflow.services.density import (
    DensityLimits,
    count_content_words,
    passes_density_check,
    truncate_to_limits,
)


def test_extra_bullets_move_to_overflow():
    body = "\n".join(f"- item {c}" for c in "abcdef")

    result = truncate_to_limits(body)

    assert result.was_truncated
    assert result.body.count("\n") == 3
    assert result.body.endswith("- item d")
    assert result.overflow == "Additional details: item e; item f"


def test_numbered_bullets_count_too():
    body = "1. one\n2. two\n3) three"
    result = truncate_to_limits(body, DensityLimits(max_bullets=2))
    assert result.body == "1. one\n2. two"
    assert result.overflow == "Additional details: three"


def test_table_keeps_header_and_separator():
    rows = "\n".join(f"| r{i} | {i} |" for i in range(1, 7))
    body = f"| Name | Value |\n|---|---|\n{rows}"

    result = truncate_to_limits(body)

    kept = result.body.split("\n")
    assert kept[:2] == ["| Name | Value |", "|---|---|"]
    assert len(kept) == 6
    assert "| r5 | 5 |" in result.overflow
    assert "| r6 | 6 |" in result.overflow


def test_within_limits_is_untouched():
    body = "Intro line\n- a\n- b"
    result = truncate_to_limits(body)
    assert not result.was_truncated
    assert result.body == body
    assert result.overflow == ""


def test_word_limit_flags_without_cutting():
    body = " ".join(["word"] * 60)
    result = truncate_to_limits(body)
    assert result.was_truncated
    assert result.body == body
    assert result.overflow == ""


def test_count_content_words_ignores_markdown():
    assert count_content_words("- **Bold** point\n|---|---|\n| a | b |") == 4


def test_passes_density_check():
    assert passes_density_check("- a\n- b")
    assert not passes_density_check("\n".join(f"- {i}" for i in range(5)))
    assert not passes_density_check("| h |\n|---|\n" + "\n".join(f"| {i} |" for i in range(5)))
