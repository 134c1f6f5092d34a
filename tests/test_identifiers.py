"""Unit tests for device identifier sanitizing."""

from __future__ import annotations

import pytest

from models.errors import InvalidIdentifier, ValidationError
from services.identifiers import sanitize_identifier


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("room_12", "room_12"),
        ("room-12", "room_12"),
        ("Gym", "Gym"),
        ("a", "a"),
        ("  lab-3b  ", "lab_3b"),
    ],
)
def test_accepts_and_normalizes_valid_names(raw: str, expected: str) -> None:
    assert sanitize_identifier(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "12room",
        "_hidden",
        "room 12",
        "room.12",
        'room"; DROP TABLE devices; --',
        "room`12",
        "room\n12",
        "-room",
        None,
        42,
    ],
)
def test_rejects_unsafe_names(raw: object) -> None:
    with pytest.raises(InvalidIdentifier):
        sanitize_identifier(raw)


def test_hyphen_normalization_can_be_disabled() -> None:
    assert sanitize_identifier("room_12", normalize_hyphens=False) == "room_12"
    with pytest.raises(InvalidIdentifier):
        sanitize_identifier("room-12", normalize_hyphens=False)


def test_invalid_identifier_is_a_validation_error() -> None:
    with pytest.raises(ValidationError) as excinfo:
        sanitize_identifier("bad name")
    assert "bad name" in str(excinfo.value)
