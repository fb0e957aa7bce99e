"""Tests for version and URL helpers."""

from modledger.utils import (
    filename_from_url,
    highest_game_version,
    is_game_version_compatible,
    join_csv_list,
    parse_game_version,
    split_csv_list,
    strip_v,
    version_segments,
)


def test_parse_game_version():
    assert parse_game_version("1.21.5") == (1, 21, 5)
    assert parse_game_version("1.21") == (1, 21, 0)
    assert parse_game_version("25w14a") is None
    assert parse_game_version("") is None


def test_older_patch_is_compatible_with_newer_patch():
    assert is_game_version_compatible("1.21.4", "1.21.5")
    assert is_game_version_compatible("1.21", "1.21.5")
    assert is_game_version_compatible("1.21.5", "1.21.5")


def test_forward_compatibility_is_never_assumed():
    assert not is_game_version_compatible("1.21.6", "1.21.5")
    assert not is_game_version_compatible("1.20.6", "1.21.5")
    assert not is_game_version_compatible("1.21.4-pre1", "1.21.5")


def test_highest_game_version_ignores_snapshots():
    assert highest_game_version(["1.21.4", "1.21.10", "1.21.9", "25w14a"]) == "1.21.10"
    assert highest_game_version(["snapshot"]) is None


def test_strip_v_only_before_digit():
    assert strip_v("v1.2.0") == "1.2.0"
    assert strip_v("V2") == "2"
    assert strip_v("vanilla") == "vanilla"


def test_version_segments():
    assert version_segments("0.5.8+1.21-Fabric") == ["0", "5", "8", "1", "21", "fabric"]


def test_filename_from_url_is_decoded():
    assert filename_from_url("https://x/files/My%20Mod%2B1.jar?x=1") == "My Mod+1.jar"
    assert filename_from_url("https://x/dir/") == ""
    assert filename_from_url(None) == ""


def test_csv_lists():
    assert split_csv_list(" a, b,,c ") == ["a", "b", "c"]
    assert join_csv_list(["a", "b", "a", ""]) == "a,b"
