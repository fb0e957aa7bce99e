"""
配置数据模型

所有客户端、解析器、协调器都通过显式传入的 ModLedgerConfig 获取
缓存目录、API 密钥与超时设置，不读取全局状态。
"""

import os
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

from modledger.exceptions import ConfigValidationError


class ModLoader(Enum):
    """模组加载器"""

    FABRIC = "fabric"
    FORGE = "forge"
    NEOFORGE = "neoforge"
    QUILT = "quilt"
    IRIS = "iris"
    OPTIFINE = "optifine"
    DATAPACK = "datapack"


class VersionFamily(Enum):
    """下载批次所针对的版本系列"""

    CURRENT = "current"
    NEXT = "next"
    LATEST = "latest"


@dataclass
class ApiConfig:
    """上游 API 设置"""

    modrinth_base_url: str = "https://api.modrinth.com/v2"
    curseforge_base_url: str = "https://api.curseforge.com/v1"
    github_base_url: str = "https://api.github.com"
    fabric_meta_base_url: str = "https://meta.fabricmc.net"
    mojang_manifest_url: str = (
        "https://piston-meta.mojang.com/mc/game/version_manifest_v2.json"
    )
    curseforge_api_key: Optional[str] = None
    github_token: Optional[str] = None
    user_agent: str = "modledger/0.1.0"


@dataclass
class NetworkConfig:
    """网络与重试设置"""

    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    max_retry_delay: float = 30.0
    chunk_size: int = 8192


@dataclass
class PathsConfig:
    """文件路径设置"""

    database: str = "modlist.csv"
    download_dir: str = "download"
    cache_dir: str = ".cache"
    api_cache_dir: str = "apiresponse"
    results_file: Optional[str] = None

    @property
    def results_path(self) -> Path:
        if self.results_file:
            return Path(self.results_file)
        return Path(self.api_cache_dir) / "mod-download-results.csv"


def _build(cls, data: Optional[Mapping[str, Any]]):
    """只取 dataclass 已声明的键，拒绝未知键"""
    data = dict(data or {})
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigValidationError(
            f"未知的配置项: {', '.join(sorted(unknown))}",
            context={"section": cls.__name__},
        )
    return cls(**data)


@dataclass
class ModLedgerConfig:
    """ModLedger 主配置"""

    game_version: str = ""
    next_game_version: str = ""
    loader: str = ModLoader.FABRIC.value
    use_cache: bool = False
    cache_freshness: float = 300.0
    api: ApiConfig = field(default_factory=ApiConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "ModLedgerConfig":
        """从字典（toml/json/yaml 解析结果）创建配置"""
        data = dict(data or {})
        api = _build(ApiConfig, data.pop("api", None))
        network = _build(NetworkConfig, data.pop("network", None))
        paths = _build(PathsConfig, data.pop("paths", None))
        config = _build(cls, data)
        config.api = api
        config.network = network
        config.paths = paths
        config.validate()
        return config

    def apply_env(self, environ: Optional[Mapping[str, str]] = None) -> "ModLedgerConfig":
        """用环境变量覆盖配置"""
        environ = os.environ if environ is None else environ
        if environ.get("CURSEFORGE_API_KEY"):
            self.api.curseforge_api_key = environ["CURSEFORGE_API_KEY"]
        if environ.get("GITHUB_TOKEN"):
            self.api.github_token = environ["GITHUB_TOKEN"]
        if environ.get("MOJANG_MANIFEST_URL"):
            self.api.mojang_manifest_url = environ["MOJANG_MANIFEST_URL"]
        if environ.get("FABRIC_META_URL"):
            self.api.fabric_meta_base_url = environ["FABRIC_META_URL"].rstrip("/")
        return self

    def validate(self):
        """验证配置"""
        if self.network.timeout <= 0:
            raise ConfigValidationError("network.timeout 必须大于 0")
        if self.network.max_retries < 0:
            raise ConfigValidationError("network.max_retries 不能为负数")
        if self.network.chunk_size <= 0:
            raise ConfigValidationError("network.chunk_size 必须大于 0")
        if self.cache_freshness < 0:
            raise ConfigValidationError("cache_freshness 不能为负数")
        if not self.paths.download_dir or not self.paths.cache_dir:
            raise ConfigValidationError("下载目录与缓存目录不能为空")

