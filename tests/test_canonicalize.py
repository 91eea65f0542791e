"""Tests for cache-key canonicalization."""

import pytest

from tts_backend.utils.canonicalize import (
    CanonicalText,
    canonicalize,
    canonicalize_text,
    hash_text,
    sha256_hex,
)


def test_dates_times_and_punctuation_are_normalized() -> None:
    result = canonicalize("  See you on Nov 20 at 6pm!!  ")

    assert isinstance(result, CanonicalText)
    assert result.canonical == "see you on {{DATE}} at {{TIME}}!"
    assert result.hash == sha256_hex(result.canonical)
    assert len(result.hash) == 64


def test_equivalent_phrasings_share_a_hash() -> None:
    first = canonicalize("Your class is on 2024-11-25 at 10:00.")
    second = canonicalize("your   class is on 25/11/2024 at 18:30...")

    assert first.canonical == "your class is on {{DATE}} at {{TIME}}."
    assert first.hash == second.hash


def test_meridiem_time_with_minutes_is_one_placeholder() -> None:
    assert canonicalize_text("Starts at 6:30 pm") == "starts at {{TIME}}"
    assert canonicalize_text("Starts at 6 p.m. sharp") == "starts at {{TIME}} sharp"


@pytest.mark.parametrize(
    "raw",
    [
        "Clase el 25 de noviembre",
        "Cours le 25 novembre",
        "Kurs am 25. Dezember",
        "Class on December 25",
        "Class on Dec. 25",
    ],
)
def test_localized_month_dates(raw: str) -> None:
    assert "{{DATE}}" in canonicalize_text(raw)


def test_typographic_quotes_are_folded() -> None:
    assert canonicalize_text("It’s “great”") == "it's \"great\""


def test_existing_placeholders_keep_their_case() -> None:
    assert canonicalize_text("Hello {{NAME}}, WELCOME") == "hello {{NAME}}, welcome"


@pytest.mark.parametrize(
    "raw",
    [
        "Meet me on March 3 at 7:15 PM!!!  Bring   snacks.",
        "See you Nov.. 20",
        "Class on 20.. November",
        "Kurs am 25... Dezember um 18:00!!",
        "Reserva el 3 de mayo?? A las 6 p.m..",
        "Doors open at 6 p..m. tonight",
    ],
)
def test_canonicalization_is_idempotent(raw: str) -> None:
    once = canonicalize_text(raw)
    assert canonicalize_text(once) == once


def test_repeated_dots_after_month_still_form_a_date() -> None:
    assert canonicalize_text("See you Nov.. 20") == "see you {{DATE}}"
    assert canonicalize_text("Class on 20.. November") == "class on {{DATE}}"


def test_iso_and_spelled_out_dates_share_a_hash() -> None:
    assert hash_text("Your class is on 2025-11-20.") == hash_text("Your class is on 20 November.")


def test_empty_and_whitespace_only_input() -> None:
    assert canonicalize("").canonical == ""
    assert canonicalize("   \n\t ").canonical == ""
    assert canonicalize("   ").hash == sha256_hex("")


def test_hash_text_matches_canonicalize() -> None:
    assert hash_text("Hola!!") == canonicalize("hola!").hash


def test_non_string_input_is_rejected() -> None:
    with pytest.raises(TypeError):
        canonicalize(None)  # type: ignore[arg-type]
