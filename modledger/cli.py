"""
CLI 模块

命令行接口实现。
"""

import asyncio
import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import click
import toml
import yaml
from loguru import logger

from modledger.download import ArtifactCache, DownloadManager
from modledger.exceptions import ConfigParseError, ModLedgerError
from modledger.logger import setup_logger
from modledger.models import ModLedgerConfig, VersionFamily
from modledger.orchestrator import DownloadOrchestrator, render_summary
from modledger.services import ApiResponseCache, HttpClient, RecordUpdater, VersionResolver
from modledger.store import RecordStore

DEFAULT_CONFIG = "modledger.toml"


def load_config(config_path: Optional[str]) -> dict:
    """加载配置文件（toml / json / yaml），未指定且默认文件不存在时返回空配置"""
    if config_path is None:
        if not Path(DEFAULT_CONFIG).exists():
            return {}
        config_path = DEFAULT_CONFIG

    path = Path(config_path)
    if not path.exists():
        raise click.ClickException(f"配置文件不存在: {config_path}")

    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            return toml.load(config_path)
        elif suffix == ".json":
            return json.loads(path.read_text(encoding="utf-8"))
        elif suffix in (".yaml", ".yml"):
            return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(f"配置文件解析失败: {config_path}", context={"error": str(e)})
    raise click.ClickException(f"不支持的配置文件格式: {suffix}")


def build_config(config_path: Optional[str], database: Optional[str]) -> ModLedgerConfig:
    config = ModLedgerConfig.from_dict(load_config(config_path)).apply_env()
    if database:
        config.paths.database = database
    return config


@asynccontextmanager
async def session(config: ModLedgerConfig):
    """创建共享同一个 HTTP 会话的记录库与解析器"""
    http = HttpClient(config)
    store = RecordStore(Path(config.paths.database))
    cache = ApiResponseCache(
        Path(config.paths.api_cache_dir),
        freshness=config.cache_freshness,
        use_cache=config.use_cache,
    )
    resolver = VersionResolver.create(config, http, cache, store=store)
    try:
        yield http, store, resolver
    finally:
        await http.close()


def run(coro):
    """运行协程，把 ModLedgerError 转为 click 错误"""
    try:
        return asyncio.run(coro)
    except ModLedgerError as e:
        logger.error(f"[错误] {e}")
        raise click.ClickException(str(e))


@click.group()
@click.option("-c", "--config", "config_path", help=f"配置文件（默认 {DEFAULT_CONFIG}）")
@click.option("--database", help="数据库 CSV 路径")
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.option("--log-file", help="同时写入日志文件")
@click.version_option(version="0.1.0")
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Optional[str],
    database: Optional[str],
    debug: bool,
    log_file: Optional[str],
):
    """ModLedger - Minecraft 模组版本解析与下载工具"""
    setup_logger(level="DEBUG" if debug else None, log_file=log_file)
    try:
        ctx.obj = build_config(config_path, database)
    except ModLedgerError as e:
        raise click.ClickException(str(e))


@main.command()
@click.option(
    "--family",
    type=click.Choice([family.value for family in VersionFamily]),
    default=VersionFamily.CURRENT.value,
    show_default=True,
    help="版本系列",
)
@click.option("--force", is_flag=True, help="覆盖已存在的文件")
@click.option("--game-version", help="目标游戏版本")
@click.pass_obj
def download(config: ModLedgerConfig, family: str, force: bool, game_version: Optional[str]):
    """下载数据库中的全部模组"""

    async def _download():
        async with session(config) as (http, store, resolver):
            downloader = DownloadManager(http, ArtifactCache(Path(config.paths.cache_dir)))
            orchestrator = DownloadOrchestrator(config, store, resolver, downloader)
            return await orchestrator.run(VersionFamily(family), force, game_version)

    report = run(_download())
    click.echo(render_summary(report))


@main.command()
@click.option("--no-update", is_flag=True, help="只校验，不写回数据库")
@click.pass_obj
def validate(config: ModLedgerConfig, no_update: bool):
    """校验并更新全部记录的版本信息"""

    async def _validate():
        async with session(config) as (_, store, resolver):
            return await RecordUpdater(config, store, resolver).validate_all(update=not no_update)

    report = run(_validate())
    click.echo(
        f"检查 {report.checked} 条，更新 {len(report.updated)} 条，失败 {len(report.errors)} 条"
    )
    for record_id, error in report.errors.items():
        click.echo(f"  - {record_id}: {error}")


@main.command()
@click.argument("source")
@click.option("--type", "record_type", help="记录类型（默认由 URL 推断）")
@click.option("--group", default="required", show_default=True, help="分组")
@click.option("--loader", help="加载器")
@click.option("--game-version", help="游戏版本")
@click.pass_obj
def add(
    config: ModLedgerConfig,
    source: str,
    record_type: Optional[str],
    group: str,
    loader: Optional[str],
    game_version: Optional[str],
):
    """通过 URL 或 ID 添加模组"""

    async def _add():
        async with session(config) as (_, store, resolver):
            return await RecordUpdater(config, store, resolver).add_mod(
                source, record_type, group, loader, game_version
            )

    record = run(_add())
    click.echo(f"已添加 {record.id} {record.current_version}")


@main.command("add-server")
@click.argument("game_version")
@click.pass_obj
def add_server(config: ModLedgerConfig, game_version: str):
    """为新的游戏版本添加服务端记录"""

    async def _add_server():
        async with session(config) as (_, store, resolver):
            return await RecordUpdater(config, store, resolver).add_server_records(game_version)

    added = run(_add_server())
    click.echo(f"已添加 {len(added)} 条服务端记录")


if __name__ == "__main__":
    main()
