"""Tests for registry clients and the response cache."""

import pytest
from conftest import FakeHttp

from modledger.exceptions import APINotFoundError, MissingAPIKeyError
from modledger.services import (
    ApiResponseCache,
    CurseForgeClient,
    FabricMetaClient,
    GitHubClient,
    ModrinthClient,
    MojangClient,
)
from modledger.services.github_client import asset_game_version

MODRINTH = "https://api.modrinth.com/v2"
CURSEFORGE = "https://api.curseforge.com/v1"
GITHUB = "https://api.github.com"
FABRIC = "https://meta.fabricmc.net"


@pytest.mark.asyncio
async def test_curseforge_without_api_key_fails_before_any_request(config):
    config.api.curseforge_api_key = None
    http = FakeHttp(config)
    client = CurseForgeClient(http)

    with pytest.raises(MissingAPIKeyError) as excinfo:
        await client.get_versions("jei")

    assert "CURSEFORGE_API_KEY" in excinfo.value.message
    assert http.requests == []


@pytest.mark.asyncio
async def test_curseforge_resolves_slug_by_search(config):
    config.api.curseforge_api_key = "key"
    http = FakeHttp(
        config,
        {
            f"{CURSEFORGE}/mods/search": {
                "data": [{"id": 1, "slug": "jei-addon"}, {"id": 238222, "slug": "jei"}]
            },
            f"{CURSEFORGE}/mods/238222/files": {
                "data": [
                    {
                        "id": 7001,
                        "displayName": "jei-1.21.5-fabric-20.0.1",
                        "fileName": "jei-1.21.5-fabric-20.0.1.jar",
                        "downloadUrl": "https://edge.forgecdn.net/files/7/1/jei.jar",
                        "gameVersions": ["1.21.5", "Fabric"],
                    }
                ],
                "pagination": {"totalCount": 1},
            },
        },
    )
    client = CurseForgeClient(http)

    assert await client.resolve_project_id("https://www.curseforge.com/minecraft/mc-mods/jei") == 238222
    assert await client.resolve_project_id("12345") == 12345

    versions = await client.get_versions("jei")
    assert [entry.version for entry in versions] == ["jei-1.21.5-fabric-20.0.1"]
    url, params, headers = http.requests[-1]
    assert params == {"index": 0, "pageSize": 50}
    assert headers["x-api-key"] == "key"


@pytest.mark.asyncio
async def test_curseforge_falls_back_to_top_search_hit(config):
    config.api.curseforge_api_key = "key"
    http = FakeHttp(config, {f"{CURSEFORGE}/mods/search": {"data": [{"id": 9, "slug": "other"}]}})

    assert await CurseForgeClient(http).resolve_project_id("missing-slug") == 9


@pytest.mark.asyncio
async def test_curseforge_search_without_results_is_not_found(config):
    config.api.curseforge_api_key = "key"
    http = FakeHttp(config, {f"{CURSEFORGE}/mods/search": {"data": []}})

    with pytest.raises(APINotFoundError):
        await CurseForgeClient(http).resolve_project_id("nothing")


@pytest.mark.asyncio
async def test_curseforge_search_ignores_hits_without_id(config):
    config.api.curseforge_api_key = "key"
    http = FakeHttp(
        config,
        {
            f"{CURSEFORGE}/mods/search": {
                "data": [{"slug": "broken", "id": None}, {"slug": "other", "id": 4}]
            }
        },
    )

    assert await CurseForgeClient(http).resolve_project_id("broken") == 4


@pytest.mark.asyncio
async def test_curseforge_search_with_only_idless_hits_is_not_found(config):
    config.api.curseforge_api_key = "key"
    http = FakeHttp(config, {f"{CURSEFORGE}/mods/search": {"data": [{"slug": "broken", "id": None}]}})

    with pytest.raises(APINotFoundError):
        await CurseForgeClient(http).resolve_project_id("broken")


@pytest.mark.asyncio
async def test_modrinth_responses_are_cached(config, tmp_path):
    http = FakeHttp(
        config,
        {
            f"{MODRINTH}/project/sodium": {"id": "AANobbMI", "slug": "sodium", "title": "Sodium"},
            f"{MODRINTH}/project/sodium/version": [
                {
                    "id": "v1",
                    "version_number": "0.6.0",
                    "loaders": ["fabric"],
                    "game_versions": ["1.21.5"],
                    "files": [{"url": "https://cdn/sodium.jar", "filename": "sodium.jar"}],
                }
            ],
        },
    )
    cache = ApiResponseCache(tmp_path / "api", use_cache=True)
    client = ModrinthClient(http, cache)

    project = await client.get_project("sodium")
    versions = await client.get_versions("sodium")
    await client.get_versions("sodium")

    assert project.title == "Sodium"
    assert versions[0].version == "0.6.0"
    assert len(http.requests) == 2
    assert (tmp_path / "api" / "modrinth" / "sodium.json").exists()
    assert (tmp_path / "api" / "modrinth" / "sodium-versions.json").exists()


@pytest.mark.asyncio
async def test_response_cache_freshness_window(tmp_path):
    fresh = ApiResponseCache(tmp_path, freshness=300, use_cache=False)
    stale = ApiResponseCache(tmp_path, freshness=0, use_cache=False)
    await fresh.store("github", "owner-repo", {"name": "repo"})

    assert await fresh.load("github", "owner-repo") == {"name": "repo"}
    assert await stale.load("github", "owner-repo") is None


def test_asset_game_version():
    assert asset_game_version("mod-1.0.0-1.21.5.jar") == "1.21.5"
    assert asset_game_version("mod-1.0.0.jar") is None


@pytest.mark.asyncio
async def test_github_versions_skip_drafts(config):
    config.api.github_token = "token"
    http = FakeHttp(
        config,
        {
            f"{GITHUB}/repos/owner/mod/releases": [
                {
                    "tag_name": "v1.1.0",
                    "published_at": "2025-05-01T00:00:00Z",
                    "assets": [
                        {"name": "mod-1.1.0-1.21.6.jar", "browser_download_url": "https://gh/1.1.0.jar"},
                        {"name": "mod-1.1.0-sources.zip", "browser_download_url": "https://gh/src.zip"},
                    ],
                },
                {"tag_name": "v2.0.0-draft", "draft": True, "assets": []},
            ]
        },
    )
    client = GitHubClient(http)

    versions = await client.get_versions("owner/mod")

    assert [entry.version for entry in versions] == ["1.1.0"]
    assert versions[0].game_versions == ["1.21.6"]
    assert [file.filename for file in versions[0].files] == ["mod-1.1.0-1.21.6.jar"]
    assert http.requests[0][2]["Authorization"] == "Bearer token"


@pytest.mark.asyncio
async def test_fabric_server_resolution(config):
    http = FakeHttp(
        config,
        {
            f"{FABRIC}/v2/versions/loader/1.21.5": [
                {"loader": {"version": "0.17.0-beta", "stable": False}},
                {"loader": {"version": "0.16.14", "stable": True}},
            ],
            f"{FABRIC}/v2/versions/installer": [{"version": "1.0.3", "stable": True}],
        },
    )

    artifact = await FabricMetaClient(http).resolve_server("1.21.5")

    assert artifact.found
    assert artifact.version_url == f"{FABRIC}/v2/versions/loader/1.21.5/0.16.14/1.0.3/server/jar"
    assert artifact.jar == "fabric-server-mc.1.21.5-loader.0.16.14-launcher.1.0.3.jar"


@pytest.mark.asyncio
async def test_mojang_server_resolution(config):
    manifest_url = config.api.mojang_manifest_url
    http = FakeHttp(
        config,
        {
            manifest_url: {"versions": [{"id": "1.21.5", "url": "https://piston/1.21.5.json"}]},
            "https://piston/1.21.5.json": {
                "downloads": {"server": {"url": "https://piston/server.jar", "size": 10}}
            },
        },
    )
    client = MojangClient(http)

    artifact = await client.resolve_server("1.21.5")
    missing = await client.resolve_server("9.9.9")

    assert artifact.version_url == "https://piston/server.jar"
    assert artifact.jar == "minecraft_server.1.21.5.jar"
    assert not missing.found
