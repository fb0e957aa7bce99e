"""Tests for record validation and record creation."""

from pathlib import Path

import pytest
from conftest import FakeHttp, FakeResolver, github_responses

from modledger.exceptions import DuplicateRecordError, MissingAPIKeyError, ResolutionError
from modledger.models import (
    DependencyInfo,
    DependencyKind,
    ModRecord,
    ProjectInfo,
    ResolvedArtifact,
)
from modledger.services import RecordUpdater, VersionResolver
from modledger.store import RecordStore


def artifact(version, game_version, project_id="", deps=(), available=()):
    return ResolvedArtifact(
        found=True,
        version=version,
        version_url=f"https://cdn.example.com/{project_id or 'mod'}-{version}.jar",
        game_version=game_version,
        jar=f"{project_id or 'mod'}-{version}.jar",
        dependencies=[DependencyInfo(project_id=dep, kind=kind) for dep, kind in deps],
        available_game_versions=list(available),
        project=ProjectInfo(id=project_id, slug=project_id, title=project_id.title())
        if project_id
        else None,
    )


def seed(config, records):
    store = RecordStore(Path(config.paths.database))
    for record in records:
        store.add(record)
    store.save()
    return RecordStore(Path(config.paths.database))


@pytest.fixture
def resolver():
    return FakeResolver(
        {
            ("sodium", "0.5.0"): artifact(
                "0.5.0", "1.21.4", "AANobbMI", deps=[("P7dR8mSH", DependencyKind.REQUIRED)]
            ),
            ("sodium", "latest"): artifact(
                "0.6.0",
                "1.21.5",
                "AANobbMI",
                deps=[
                    ("P7dR8mSH", DependencyKind.REQUIRED),
                    ("YL57xq9U", DependencyKind.OPTIONAL),
                ],
                available=["1.21.4", "1.21.5"],
            ),
            "fabric-api": artifact("0.128.0", "1.21.5", "P7dR8mSH"),
            "lithium": artifact("0.15.0", "1.21.5", "gvQqBUqZ"),
        }
    )


@pytest.mark.asyncio
async def test_validate_all_updates_registry_records(config, resolver):
    store = seed(
        config,
        [
            ModRecord(
                id="sodium",
                name="Sodium",
                host="modrinth",
                current_version="0.5.0",
                current_game_version="1.21.4",
            ),
            ModRecord(id="fabric-api", host="modrinth"),
            ModRecord(id="tool", host="direct", url_direct="https://example.com/tool.jar"),
            ModRecord(id="server", name="Server", type="server", current_game_version="1.21.5"),
        ],
    )

    report = await RecordUpdater(config, store, resolver).validate_all()

    assert report.checked == 2
    assert report.updated == ["sodium", "fabric-api"]
    assert report.errors == {}
    assert report.dangling == {"sodium": ["YL57xq9U"]}
    assert all(call[0] in ("sodium", "fabric-api") for call in resolver.calls)

    reloaded = RecordStore(Path(config.paths.database))
    reloaded.load()
    sodium = reloaded.find("sodium")
    assert sodium.current_version == "0.5.0"
    assert sodium.current_game_version == "1.21.4"
    assert sodium.jar == "AANobbMI-0.5.0.jar"
    assert sodium.latest_version == "0.6.0"
    assert sodium.latest_game_version == "1.21.5"
    assert sodium.current_dependencies_required == "fabric-api"
    assert sodium.latest_dependencies_required == "fabric-api"
    assert sodium.latest_dependencies_optional == "YL57xq9U"
    assert sodium.available_game_versions == "1.21.4,1.21.5"
    assert sodium.name == "Sodium"
    assert sodium.title == "Aanobbmi"
    assert not reloaded.modified_externally


@pytest.mark.asyncio
async def test_validate_without_update_leaves_database(config, resolver):
    store = seed(config, [ModRecord(id="fabric-api", host="modrinth")])
    before = Path(config.paths.database).read_text(encoding="utf-8")

    report = await RecordUpdater(config, store, resolver).validate_all(update=False)

    assert report.updated == ["fabric-api"]
    assert Path(config.paths.database).read_text(encoding="utf-8") == before


@pytest.mark.asyncio
async def test_validate_isolates_failing_records(config):
    resolver = FakeResolver(
        {
            "cf-mod": MissingAPIKeyError("缺少 CurseForge API 密钥"),
            "lithium": artifact("0.15.0", "1.21.5", "gvQqBUqZ"),
        }
    )
    store = seed(
        config,
        [ModRecord(id="cf-mod", host="curseforge"), ModRecord(id="lithium", host="modrinth")],
    )

    report = await RecordUpdater(config, store, resolver).validate_all()

    assert list(report.errors) == ["cf-mod"]
    assert "CurseForge" in report.errors["cf-mod"]
    assert report.updated == ["lithium"]


@pytest.mark.asyncio
async def test_validate_keeps_going_after_unexpected_error(config):
    resolver = FakeResolver(
        {
            "broken": ValueError("bad search hit"),
            "lithium": artifact("0.15.0", "1.21.5", "gvQqBUqZ"),
        }
    )
    store = seed(
        config,
        [ModRecord(id="broken", host="modrinth"), ModRecord(id="lithium", host="modrinth")],
    )

    report = await RecordUpdater(config, store, resolver).validate_all()

    assert report.errors == {"broken": "bad search hit"}
    assert report.updated == ["lithium"]
    reloaded = RecordStore(Path(config.paths.database))
    reloaded.load()
    assert reloaded.find("lithium").latest_version == "0.15.0"


@pytest.mark.asyncio
async def test_validate_github_latest_game_version_spans_all_releases(config):
    store = seed(config, [ModRecord(id="owner/mod", host="github")])
    resolver = VersionResolver.create(config, FakeHttp(config, github_responses()), store=store)

    report = await RecordUpdater(config, store, resolver).validate_all()

    assert report.errors == {}
    reloaded = RecordStore(Path(config.paths.database))
    reloaded.load()
    record = reloaded.find("owner/mod")
    assert record.latest_version == "1.0.0"
    assert record.latest_game_version == "1.21.6"
    assert record.current_game_version == "1.21.5"


@pytest.mark.asyncio
async def test_add_mod_from_url(config, resolver):
    store = seed(config, [])

    record = await RecordUpdater(config, store, resolver).add_mod(
        "https://modrinth.com/mod/lithium"
    )

    assert record.id == "lithium"
    assert record.host == "modrinth"
    assert record.type == "mod"
    assert record.loader == "fabric"
    assert record.url == "https://modrinth.com/mod/lithium"
    assert record.current_version == record.latest_version == "0.15.0"
    assert record.current_game_version == "1.21.5"

    reloaded = RecordStore(Path(config.paths.database))
    reloaded.load()
    assert reloaded.find("lithium") is not None


@pytest.mark.asyncio
async def test_add_mod_rejects_duplicates(config, resolver):
    store = seed(config, [ModRecord(id="sodium", host="modrinth")])

    with pytest.raises(DuplicateRecordError):
        await RecordUpdater(config, store, resolver).add_mod("https://modrinth.com/mod/Sodium")
    assert resolver.calls == []


@pytest.mark.asyncio
async def test_add_direct_record_skips_resolution(config, resolver):
    store = seed(config, [])
    url = "https://example.com/files/tool.jar"

    record = await RecordUpdater(config, store, resolver).add_mod(url, record_type="installer")

    assert record.host == "direct"
    assert record.url_direct == url
    assert record.type == "installer"
    assert record.loader == ""
    assert resolver.calls == []


@pytest.mark.asyncio
async def test_add_unresolvable_mod_fails(config, resolver):
    store = seed(config, [])

    with pytest.raises(ResolutionError):
        await RecordUpdater(config, store, resolver).add_mod("ghost")
    assert len(store) == 0


@pytest.mark.asyncio
async def test_add_server_records(config):
    server_url = "https://piston-data.mojang.com/v1/objects/abc/server.jar"
    fabric_url = "https://meta.fabricmc.net/v2/versions/loader/1.21.6/0.16.14/1.0.3/server/jar"
    resolver = FakeResolver(
        {
            "minecraft-server-1.21.6": ResolvedArtifact(
                found=True,
                version="1.21.6",
                version_url=server_url,
                game_version="1.21.6",
                jar="minecraft_server.1.21.6.jar",
            ),
            "fabric-server-1.21.6": ResolvedArtifact(
                found=True,
                version="0.16.14",
                version_url=fabric_url,
                game_version="1.21.6",
                jar="fabric-server-mc.1.21.6-loader.0.16.14-launcher.1.0.3.jar",
            ),
        }
    )
    store = seed(config, [])
    updater = RecordUpdater(config, store, resolver)

    added = await updater.add_server_records("1.21.6")

    assert [record.name for record in added] == ["Minecraft Server", "Fabric Server"]
    assert added[0].loader == ""
    assert added[1].loader == "fabric"
    assert added[1].url_direct == fabric_url
    assert all(record.group == "admin" and record.type == "server" for record in added)

    assert await updater.add_server_records("1.21.6") == []
    assert len(store) == 2
