"""Tests for the download layer: paths, cache and manager."""

import hashlib

import pytest
from conftest import FakeHttp

from modledger.download import (
    ArtifactCache,
    DownloadManager,
    FileVerifier,
    cache_key,
    destination_path,
    select_filename,
    type_subfolder,
)
from modledger.exceptions import DownloadChecksumError, DownloadFileError
from modledger.models import ModRecord


@pytest.mark.parametrize(
    "record_type, group, expected",
    [
        ("shaderpack", "optional", "shaderpacks"),
        ("datapack", "required", "datapacks"),
        ("installer", "admin", "installer"),
        ("modpack", "required", "modpacks"),
        ("launcher", "admin", ""),
        ("server", "admin", ""),
        ("mod", "required", "mods"),
        ("mod", "block", "mods/block"),
        ("", "", "mods"),
    ],
)
def test_type_subfolder(record_type, group, expected):
    assert type_subfolder(record_type, group) == expected


def test_select_filename_order():
    record = ModRecord(id="sodium", jar="sodium-0.5.0.jar")

    assert select_filename(record, "https://cdn/x/sodium-0.6.0.jar", "0.6.0") == "sodium-0.5.0.jar"
    assert (
        select_filename(record, "https://cdn/x/sodium%200.6.0.jar", "0.6.0", use_jar=False)
        == "sodium 0.6.0.jar"
    )
    assert select_filename(ModRecord(id="sodium"), "https://cdn/x/", "0.6.0") == "sodium-0.6.0.jar"


def test_destination_path(tmp_path):
    shader = ModRecord(id="bsl", type="shaderpack")
    server = ModRecord(id="server", type="server")

    assert destination_path(tmp_path, "1.21.5", shader, "bsl.zip") == (
        tmp_path / "1.21.5" / "shaderpacks" / "bsl.zip"
    )
    assert destination_path(tmp_path, "1.21.5", server, "server.jar") == (
        tmp_path / "1.21.5" / "server.jar"
    )


def test_cache_key_is_content_addressed(tmp_path):
    url = "https://x/a.jar"
    cache = ArtifactCache(tmp_path)

    assert cache_key(url) == hashlib.sha256(url.encode()).hexdigest()[:16]
    assert cache.path_for(url) == tmp_path / "x" / f"{cache_key(url)}-a.jar"
    assert cache.path_for(url) == cache.path_for(url)
    assert cache.path_for("https://x/b.jar") != cache.path_for(url)


def test_cache_groups_files_by_registry(tmp_path):
    url = "https://cdn.modrinth.com/data/AANobbMI/sodium.jar"
    cache = ArtifactCache(tmp_path)

    assert cache.path_for(url, "modrinth") == tmp_path / "modrinth" / f"{cache_key(url)}-sodium.jar"
    assert cache.path_for(url, "modrinth").parent != cache.path_for(url).parent


def test_verifier_rejects_partial_files(tmp_path):
    empty = tmp_path / "empty.jar"
    empty.write_bytes(b"")
    part = tmp_path / "mod.jar.part"
    part.write_bytes(b"data")
    full = tmp_path / "mod.jar"
    full.write_bytes(b"data")

    assert not FileVerifier.is_complete(str(empty))
    assert not FileVerifier.is_complete(str(part))
    assert not FileVerifier.is_complete(str(tmp_path / "missing.jar"))
    assert FileVerifier.is_complete(str(full))
    assert FileVerifier.is_complete(str(full), expected_size=4)
    assert not FileVerifier.is_complete(str(full), expected_size=10)


@pytest.mark.asyncio
async def test_same_url_is_downloaded_once(config, tmp_path):
    url = "https://x/a.jar"
    http = FakeHttp(config, files={url: b"payload"})
    manager = DownloadManager(http, ArtifactCache(tmp_path / "cache"))

    first = await manager.fetch(url, tmp_path / "one" / "a.jar")
    second = await manager.fetch(url, tmp_path / "two" / "a.jar")

    assert http.downloads == [url]
    assert not first.from_cache
    assert second.from_cache
    assert (tmp_path / "one" / "a.jar").read_bytes() == b"payload"
    assert (tmp_path / "two" / "a.jar").read_bytes() == b"payload"
    assert manager.stats.cache_hits == 1


@pytest.mark.asyncio
async def test_checksum_mismatch_discards_cache_entry(config, tmp_path):
    url = "https://x/a.jar"
    cache = ArtifactCache(tmp_path / "cache")
    manager = DownloadManager(FakeHttp(config, files={url: b"payload"}), cache)

    with pytest.raises(DownloadChecksumError):
        await manager.fetch(url, tmp_path / "a.jar", expected_sha1="0" * 40)

    assert not cache.path_for(url).exists()
    assert not (tmp_path / "a.jar").exists()

    good = hashlib.sha1(b"payload").hexdigest()
    outcome = await manager.fetch(url, tmp_path / "a.jar", expected_sha1=good)
    assert outcome.size == len(b"payload")


@pytest.mark.asyncio
async def test_local_file_urls_are_copied(config, tmp_path):
    source = tmp_path / "local.jar"
    source.write_bytes(b"local")
    manager = DownloadManager(FakeHttp(config), ArtifactCache(tmp_path / "cache"))

    outcome = await manager.fetch(f"file://{source}", tmp_path / "out" / "local.jar")

    assert outcome.path.read_bytes() == b"local"
    with pytest.raises(DownloadFileError):
        await manager.fetch(f"file://{tmp_path / 'nope.jar'}", tmp_path / "out" / "nope.jar")
