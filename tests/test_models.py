"""Tests for data models."""

import pytest

from modledger.models import (
    DependencyKind,
    Host,
    ModRecord,
    RecordType,
    VersionEntry,
    VersionFamily,
    VersionKeyword,
    VersionSelector,
    identity_from_url,
)


def test_version_selector_parse():
    assert VersionSelector.parse("latest") == VersionSelector.latest()
    assert VersionSelector.parse("NEXT").keyword == VersionKeyword.NEXT
    assert VersionSelector.parse("current") == VersionSelector.current()
    assert VersionSelector.parse("") == VersionSelector.latest()

    exact = VersionSelector.parse(" 0.5.8 ")
    assert exact.is_exact
    assert exact.version == "0.5.8"
    assert str(exact) == "0.5.8"


def test_modrinth_dependencies_are_bucketed():
    entry = VersionEntry.from_modrinth(
        {
            "id": "abc",
            "version_number": "1.0.0",
            "loaders": ["Fabric"],
            "game_versions": ["1.21.5"],
            "date_published": "2025-05-01T12:00:00.123456Z",
            "files": [{"url": "https://cdn/x.jar", "filename": "x.jar", "primary": True}],
            "dependencies": [
                {"project_id": "P7dR8mSH", "dependency_type": "required"},
                {"project_id": "mOgUt4GM", "dependency_type": "optional"},
                {"project_id": "bad", "dependency_type": "incompatible"},
                {"project_id": "inside", "dependency_type": "embedded"},
                {"dependency_type": "required"},
            ],
        }
    )

    assert entry.loaders == ["fabric"]
    assert entry.published.year == 2025
    assert [(dep.project_id, dep.kind) for dep in entry.dependencies] == [
        ("P7dR8mSH", DependencyKind.REQUIRED),
        ("mOgUt4GM", DependencyKind.OPTIONAL),
    ]


def test_curseforge_file_is_normalised():
    entry = VersionEntry.from_curseforge(
        {
            "id": 5123456,
            "displayName": "Sodium 0.6.0",
            "fileName": "sodium-fabric-0.6.0.jar",
            "downloadUrl": None,
            "fileDate": "2025-04-01T00:00:00Z",
            "fileLength": 1024,
            "gameVersions": ["1.21.5", "Fabric", "Client", "1.21.4"],
            "hashes": [{"algo": 1, "value": "aa"}, {"algo": 2, "value": "bb"}],
            "dependencies": [
                {"modId": 1, "relationType": 3},
                {"modId": 2, "relationType": 2},
                {"modId": 3, "relationType": 1},
                {"modId": 4, "relationType": 5},
            ],
        }
    )

    assert entry.version == "Sodium 0.6.0"
    assert entry.loaders == ["fabric"]
    assert entry.game_versions == ["1.21.5", "1.21.4"]
    assert entry.primary_file.url == (
        "https://edge.forgecdn.net/files/5123/456/sodium-fabric-0.6.0.jar"
    )
    assert entry.primary_file.hashes == {"sha1": "aa", "md5": "bb"}
    assert [dep.project_id for dep in entry.dependencies] == ["1", "2"]


@pytest.mark.parametrize(
    "source, expected",
    [
        ("https://modrinth.com/mod/sodium", (Host.MODRINTH, "sodium", RecordType.MOD)),
        (
            "https://modrinth.com/shader/complementary-reimagined",
            (Host.MODRINTH, "complementary-reimagined", RecordType.SHADERPACK),
        ),
        (
            "https://www.curseforge.com/minecraft/mc-mods/jei",
            (Host.CURSEFORGE, "jei", RecordType.MOD),
        ),
        ("https://github.com/owner/repo.git", (Host.GITHUB, "owner/repo", None)),
        ("owner/repo", (Host.GITHUB, "owner/repo", None)),
        ("fabric-api", (Host.MODRINTH, "fabric-api", None)),
        ("https://example.com/a.jar", (Host.DIRECT, "https://example.com/a.jar", None)),
    ],
)
def test_identity_from_url(source, expected):
    assert identity_from_url(source) == expected


def test_record_update_recomputes_hash():
    record = ModRecord(id="sodium", host="modrinth")
    record.refresh_hash()
    before = record.record_hash

    assert record.update(latest_version="0.6.0") == ["latest_version"]
    assert record.record_hash != before
    assert not record.externally_modified

    assert record.update(latest_version="0.6.0") == []


def test_external_edit_is_detected():
    record = ModRecord(id="sodium")
    record.refresh_hash()
    record.name = "Sodium"

    assert record.externally_modified


def test_record_update_rejects_unknown_field():
    with pytest.raises(AttributeError):
        ModRecord().update(colour="red")


def test_family_fields_and_system_types():
    record = ModRecord(
        type="server",
        next_version="1",
        next_version_url="https://x/1.jar",
        next_game_version="1.21.6",
    )

    assert record.is_system
    assert record.family_fields(VersionFamily.NEXT) == ("1", "https://x/1.jar", "1.21.6")
    assert ModRecord(host="unknown").host_type == Host.DIRECT
