"""
模组记录模型

数据库（modlist.csv）中的一行。所有规范列始终存在（默认空字符串），
未知列原样保存在 extra 中，保存时不会丢失。
"""

import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from modledger.models.config import VersionFamily
from modledger.utils import sha256_text


class Host(Enum):
    """记录来源"""

    MODRINTH = "modrinth"
    CURSEFORGE = "curseforge"
    GITHUB = "github"
    DIRECT = "direct"


class RecordType(Enum):
    MOD = "mod"
    DATAPACK = "datapack"
    SHADERPACK = "shaderpack"
    MODPACK = "modpack"
    INSTALLER = "installer"
    LAUNCHER = "launcher"
    SERVER = "server"
    JDK = "jdk"


class Group(Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    ADMIN = "admin"
    BLOCK = "block"


SYSTEM_TYPES = {
    RecordType.INSTALLER.value,
    RecordType.LAUNCHER.value,
    RecordType.SERVER.value,
    RecordType.JDK.value,
}

# (属性名, CSV 列名)，顺序即规范列顺序
COLUMNS: List[Tuple[str, str]] = [
    ("group", "Group"),
    ("type", "Type"),
    ("id", "ID"),
    ("name", "Name"),
    ("description", "Description"),
    ("loader", "Loader"),
    ("host", "Host"),
    ("category", "Category"),
    ("jar", "Jar"),
    ("url", "Url"),
    ("url_direct", "UrlDirect"),
    ("current_version", "CurrentVersion"),
    ("current_version_url", "CurrentVersionUrl"),
    ("current_game_version", "CurrentGameVersion"),
    ("next_version", "NextVersion"),
    ("next_version_url", "NextVersionUrl"),
    ("next_game_version", "NextGameVersion"),
    ("latest_version", "LatestVersion"),
    ("latest_version_url", "LatestVersionUrl"),
    ("latest_game_version", "LatestGameVersion"),
    ("current_dependencies_required", "CurrentDependenciesRequired"),
    ("current_dependencies_optional", "CurrentDependenciesOptional"),
    ("latest_dependencies_required", "LatestDependenciesRequired"),
    ("latest_dependencies_optional", "LatestDependenciesOptional"),
    ("client_side", "ClientSide"),
    ("server_side", "ServerSide"),
    ("title", "Title"),
    ("project_description", "ProjectDescription"),
    ("icon_url", "IconUrl"),
    ("issues_url", "IssuesUrl"),
    ("source_url", "SourceUrl"),
    ("wiki_url", "WikiUrl"),
    ("available_game_versions", "AvailableGameVersions"),
    ("record_hash", "RecordHash"),
]

HEADER_TO_ATTR: Dict[str, str] = {header: attr for attr, header in COLUMNS}

# 旧版列名，加载时一次性迁移到规范列
LEGACY_HEADERS: Dict[str, str] = {
    "ApiSource": "Host",
    "Version": "CurrentVersion",
    "VersionUrl": "CurrentVersionUrl",
    "GameVersion": "CurrentGameVersion",
}


@dataclass
class ModRecord:
    group: str = Group.REQUIRED.value
    type: str = RecordType.MOD.value
    id: str = ""
    name: str = ""
    description: str = ""
    loader: str = ""
    host: str = ""
    category: str = ""
    jar: str = ""
    url: str = ""
    url_direct: str = ""
    current_version: str = ""
    current_version_url: str = ""
    current_game_version: str = ""
    next_version: str = ""
    next_version_url: str = ""
    next_game_version: str = ""
    latest_version: str = ""
    latest_version_url: str = ""
    latest_game_version: str = ""
    current_dependencies_required: str = ""
    current_dependencies_optional: str = ""
    latest_dependencies_required: str = ""
    latest_dependencies_optional: str = ""
    client_side: str = ""
    server_side: str = ""
    title: str = ""
    project_description: str = ""
    icon_url: str = ""
    issues_url: str = ""
    source_url: str = ""
    wiki_url: str = ""
    available_game_versions: str = ""
    record_hash: str = ""
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def is_system(self) -> bool:
        return self.type.lower() in SYSTEM_TYPES

    @property
    def host_type(self) -> Host:
        """未知或空的来源按 direct 处理"""
        try:
            return Host(self.host.lower())
        except ValueError:
            return Host.DIRECT

    @property
    def display_name(self) -> str:
        return self.name or self.title or self.id

    def family_fields(self, family: VersionFamily) -> Tuple[str, str, str]:
        """返回 (版本, 版本 URL, 游戏版本) 三元组"""
        prefix = family.value
        return (
            getattr(self, f"{prefix}_version"),
            getattr(self, f"{prefix}_version_url"),
            getattr(self, f"{prefix}_game_version"),
        )

    def compute_hash(self) -> str:
        """对除 RecordHash 以外的所有字段计算 SHA-256"""
        parts = [
            f"{header}={getattr(self, attr)}"
            for attr, header in COLUMNS
            if attr != "record_hash"
        ]
        parts.extend(f"{key}={value}" for key, value in sorted(self.extra.items()))
        return sha256_text("|".join(parts))

    def refresh_hash(self) -> str:
        self.record_hash = self.compute_hash()
        return self.record_hash

    @property
    def externally_modified(self) -> bool:
        """存储的哈希与内容不一致，说明记录被外部修改过"""
        return bool(self.record_hash) and self.record_hash != self.compute_hash()

    def update(self, **changes: str) -> List[str]:
        """
        修改字段并重新计算哈希

        Returns:
            实际发生变化的字段名列表
        """
        known = {f.name for f in fields(self)} - {"extra", "record_hash"}
        changed = []
        for key, value in changes.items():
            if key not in known:
                raise AttributeError(f"ModRecord 没有字段 {key}")
            value = "" if value is None else str(value)
            if getattr(self, key) != value:
                setattr(self, key, value)
                changed.append(key)
        if changed or not self.record_hash:
            self.refresh_hash()
        return changed

    @classmethod
    def from_row(cls, row: Dict[str, Optional[str]]) -> "ModRecord":
        """从 CSV 行创建记录（旧列名在此迁移）"""
        record = cls(group="", type="")
        for header, raw in row.items():
            if header is None:
                continue
            value = raw or ""
            header = LEGACY_HEADERS.get(header, header)
            attr = HEADER_TO_ATTR.get(header)
            if attr is None:
                record.extra[header] = value
            elif value or not getattr(record, attr):
                setattr(record, attr, value)
        return record

    def to_row(self) -> Dict[str, str]:
        row = {header: getattr(self, attr) for attr, header in COLUMNS}
        row.update(self.extra)
        return row


MODRINTH_PATH_TYPES = {
    "mod": RecordType.MOD,
    "plugin": RecordType.MOD,
    "shader": RecordType.SHADERPACK,
    "datapack": RecordType.DATAPACK,
    "modpack": RecordType.MODPACK,
}

CURSEFORGE_PATH_TYPES = {
    "mc-mods": RecordType.MOD,
    "shaders": RecordType.SHADERPACK,
    "data-packs": RecordType.DATAPACK,
    "modpacks": RecordType.MODPACK,
}

GITHUB_REPO_PATTERN = re.compile(r"^[\w.-]+/[\w.-]+$")


def identity_from_url(source: str) -> Tuple[Host, str, Optional[RecordType]]:
    """
    从 URL 或显式 ID 推导 (来源, ID, 类型)

    支持:
      - https://modrinth.com/{mod|shader|datapack|modpack}/{slug}
      - https://www.curseforge.com/minecraft/{mc-mods|shaders|...}/{slug}
      - https://github.com/{owner}/{repo}
      - owner/repo（视为 GitHub）
      - 其它 http(s) URL 视为 direct；其它字符串视为 Modrinth slug/ID
    """
    text = source.strip()
    if not text.lower().startswith(("http://", "https://")):
        if GITHUB_REPO_PATTERN.match(text):
            return Host.GITHUB, text, None
        return Host.MODRINTH, text, None

    parsed = urlparse(text)
    hostname = (parsed.hostname or "").lower()
    parts = [part for part in parsed.path.split("/") if part]

    if hostname.endswith("modrinth.com") and len(parts) >= 2:
        return Host.MODRINTH, parts[1], MODRINTH_PATH_TYPES.get(parts[0])

    if hostname.endswith("curseforge.com") and len(parts) >= 3 and parts[0] == "minecraft":
        return Host.CURSEFORGE, parts[2], CURSEFORGE_PATH_TYPES.get(parts[1])

    if hostname == "github.com" and len(parts) >= 2:
        repo = parts[1][:-4] if parts[1].endswith(".git") else parts[1]
        return Host.GITHUB, f"{parts[0]}/{repo}", None

    return Host.DIRECT, text, None
