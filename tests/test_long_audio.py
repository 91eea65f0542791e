"""Tests for long-response truncation and segmentation."""

import pytest
from pydantic import ValidationError

from tts_backend.schemas.tts import SegmentationConfig
from tts_backend.services.tts.long_audio import (
    count_words,
    insert_ssml_breaks,
    needs_segmentation,
    pack_sentences,
    process_long_audio,
    split_into_sentences,
    strip_ssml,
)
from tts_backend.utils.canonicalize import hash_text

BREAK = '<break time="300ms"/>'


def _sentence(index: int, words: int = 10) -> str:
    filler = " ".join(f"word{index}x{n}" for n in range(words - 1))
    return f"{filler} end{index}."


def test_short_text_is_one_segment_with_breaks() -> None:
    text = "Hello there. How are you?"

    result = process_long_audio(text, "full")

    assert not result.was_segmented
    assert not result.was_truncated
    assert len(result.segments) == 1
    segment = result.segments[0]
    assert segment.index == 0
    assert segment.text == f"Hello there. {BREAK} How are you?"
    assert segment.plain_text == "Hello there. How are you?"
    assert segment.word_count == 5
    assert segment.estimated_seconds == pytest.approx(2.0)
    assert segment.hash == hash_text("Hello there. How are you?")


def test_ssml_can_be_disabled() -> None:
    result = process_long_audio("One. Two.", "full", {"enable_ssml": False})

    assert result.segments[0].text == "One. Two."
    assert result.segments[0].text == result.segments[0].plain_text


def test_needs_segmentation_uses_words_and_duration() -> None:
    thirty_words = " ".join(["word"] * 30)
    thirty_one_words = " ".join(["word"] * 31)

    # 30 words / 2.5 wps == 12 seconds, not over the limit
    assert not needs_segmentation(thirty_words)
    assert needs_segmentation(thirty_one_words)
    assert needs_segmentation("a b c d", config={"max_words": 3, "max_seconds": 100})


def test_full_mode_splits_on_sentence_boundaries_in_order() -> None:
    sentences = [_sentence(i) for i in range(6)]
    text = " ".join(sentences)
    config = SegmentationConfig(max_words=25, max_seconds=5)

    result = process_long_audio(text, "full", config)

    assert result.was_segmented
    assert not result.was_truncated
    assert [segment.index for segment in result.segments] == [0, 1, 2]
    assert all(segment.word_count <= 25 for segment in result.segments)
    rejoined = " ".join(segment.plain_text for segment in result.segments)
    assert rejoined == text
    assert result.total_words == 60
    assert result.original_text == text


def test_full_mode_oversize_sentence_stands_alone() -> None:
    long_sentence = _sentence(1, words=40)
    text = f"Short one. {long_sentence} Short two."

    result = process_long_audio(text, "full", {"max_words": 20, "max_seconds": 5})

    assert [segment.plain_text for segment in result.segments] == [
        "Short one.",
        long_sentence,
        "Short two.",
    ]


def test_full_mode_drops_sentences_past_max_segments() -> None:
    text = " ".join(_sentence(i) for i in range(8))

    result = process_long_audio(
        text, "full", {"max_words": 10, "max_segments": 3, "max_seconds": 1}
    )

    assert len(result.segments) == 3
    assert result.was_truncated
    assert result.segments[-1].plain_text == _sentence(2)


def test_brief_mode_truncates_to_one_segment() -> None:
    text = " ".join(_sentence(i) for i in range(6))

    result = process_long_audio(text, "brief")

    assert len(result.segments) == 1
    assert result.was_truncated
    assert not result.was_segmented
    # 12 s * 2.5 wps = 30 words
    assert result.segments[0].word_count <= 30
    assert result.segments[0].plain_text.startswith(_sentence(0))


def test_brief_mode_removes_asides_first() -> None:
    text = (
        "By the way, the pool opens at nine (weather permitting). "
        + " ".join(_sentence(i) for i in range(4))
    )

    result = process_long_audio(text, "brief")

    plain = result.segments[0].plain_text
    assert "weather permitting" not in plain
    assert "By the way" not in plain
    assert result.was_truncated


def test_brief_mode_cuts_first_sentence_when_it_does_not_fit() -> None:
    text = " ".join(f"w{n}" for n in range(50)) + "."

    result = process_long_audio(text, "brief")

    plain = result.segments[0].plain_text
    assert plain.endswith("...")
    assert count_words(plain) == 30


def test_brief_mode_without_truncation_falls_back_to_splitting() -> None:
    text = " ".join(_sentence(i) for i in range(6))

    result = process_long_audio(
        text, "brief", {"truncate_brief_mode": False, "max_words": 25}
    )

    assert result.was_segmented
    assert len(result.segments) > 1


def test_invalid_mode_and_config_are_rejected() -> None:
    with pytest.raises(ValueError):
        process_long_audio("Hello.", "verbose")
    with pytest.raises(ValidationError):
        process_long_audio("Hello.", "full", {"max_words": 0})
    with pytest.raises(ValidationError):
        SegmentationConfig(words_per_second=-1)


def test_helpers() -> None:
    assert split_into_sentences("One. Two!  Three? four") == ["One.", "Two!", "Three?", "four"]
    assert split_into_sentences("no punctuation here") == ["no punctuation here"]
    assert insert_ssml_breaks("Only one.", BREAK) == "Only one."
    assert strip_ssml(f"A. {BREAK} B.") == "A. B."
    assert pack_sentences(["a b.", "c d.", "e f."], 4, 1) == (["a b. c d."], True)


def test_160_words_split_into_consecutive_indices() -> None:
    text = " ".join(_sentence(n) for n in range(16))
    config = SegmentationConfig(max_words=80)

    result = process_long_audio(text, "full", config)

    count = len(result.segments)
    assert result.total_words == 160
    assert 1 < count <= config.max_segments
    assert [segment.index for segment in result.segments] == list(range(count))
    assert all(segment.word_count <= 80 for segment in result.segments)
