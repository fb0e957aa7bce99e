"""
ModLedger 数据模型包

包含配置模型、API 模型与数据库记录模型定义。
"""

from modledger.models.config import (
    ModLoader,
    VersionFamily,
    ApiConfig,
    NetworkConfig,
    PathsConfig,
    ModLedgerConfig,
)
from modledger.models.api import (
    ProjectInfo,
    FileInfo,
    DependencyKind,
    DependencyInfo,
    VersionEntry,
    GitHubAsset,
    GitHubRelease,
    VersionKeyword,
    VersionSelector,
    ResolvedArtifact,
)
from modledger.models.record import (
    Host,
    RecordType,
    Group,
    SYSTEM_TYPES,
    COLUMNS,
    ModRecord,
    identity_from_url,
)

__all__ = [
    # 配置模型
    "ModLoader",
    "VersionFamily",
    "ApiConfig",
    "NetworkConfig",
    "PathsConfig",
    "ModLedgerConfig",
    # API 模型
    "ProjectInfo",
    "FileInfo",
    "DependencyKind",
    "DependencyInfo",
    "VersionEntry",
    "GitHubAsset",
    "GitHubRelease",
    "VersionKeyword",
    "VersionSelector",
    "ResolvedArtifact",
    # 记录模型
    "Host",
    "RecordType",
    "Group",
    "SYSTEM_TYPES",
    "COLUMNS",
    "ModRecord",
    "identity_from_url",
]
