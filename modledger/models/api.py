"""
API 数据模型

定义各注册中心返回数据的统一形态：项目信息、版本条目、依赖信息，
以及解析器的输出 ResolvedArtifact。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from modledger.utils import is_game_version, join_csv_list

CURSEFORGE_LOADERS = {"fabric", "forge", "neoforge", "quilt", "liteloader", "cauldron"}
CURSEFORGE_CDN_URL = "https://edge.forgecdn.net/files"

# CurseForge relationType
CF_RELATION_EMBEDDED = 1
CF_RELATION_OPTIONAL = 2
CF_RELATION_REQUIRED = 3
CF_RELATION_TOOL = 4
CF_RELATION_INCOMPATIBLE = 5
CF_RELATION_INCLUDE = 6


class DependencyKind(Enum):
    """依赖类型（只保留必需与可选两类）"""

    REQUIRED = "required"
    OPTIONAL = "optional"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """解析 ISO-8601 时间，兼容末尾的 Z"""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Python < 3.11 的 fromisoformat 不接受超过 6 位的小数秒
    if "." in text:
        head, _, tail = text.partition(".")
        digits = ""
        rest = ""
        for index, char in enumerate(tail):
            if char.isdigit():
                digits += char
            else:
                rest = tail[index:]
                break
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class ProjectInfo:
    """
    项目信息。
    """

    id: str
    slug: str
    title: str
    description: str = ""
    project_type: str = "mod"
    client_side: str = ""
    server_side: str = ""
    icon_url: str = ""
    issues_url: str = ""
    source_url: str = ""
    wiki_url: str = ""
    game_versions: List[str] = field(default_factory=list)

    @classmethod
    def from_modrinth(cls, data: Dict[str, Any]) -> "ProjectInfo":
        return cls(
            id=data.get("id", ""),
            slug=data.get("slug", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            project_type=data.get("project_type", "mod"),
            client_side=data.get("client_side", ""),
            server_side=data.get("server_side", ""),
            icon_url=data.get("icon_url") or "",
            issues_url=data.get("issues_url") or "",
            source_url=data.get("source_url") or "",
            wiki_url=data.get("wiki_url") or "",
            game_versions=list(data.get("game_versions") or []),
        )

    @classmethod
    def from_curseforge(cls, data: Dict[str, Any]) -> "ProjectInfo":
        links = data.get("links") or {}
        logo = data.get("logo") or {}
        game_versions = []
        for index in data.get("latestFilesIndexes") or []:
            version = index.get("gameVersion")
            if version and version not in game_versions:
                game_versions.append(version)
        return cls(
            id=str(data.get("id", "")),
            slug=data.get("slug", ""),
            title=data.get("name", ""),
            description=data.get("summary", ""),
            icon_url=logo.get("url") or "",
            issues_url=links.get("issuesUrl") or "",
            source_url=links.get("sourceUrl") or "",
            wiki_url=links.get("wikiUrl") or "",
            game_versions=game_versions,
        )

    @classmethod
    def from_github(cls, data: Dict[str, Any]) -> "ProjectInfo":
        return cls(
            id=data.get("full_name", ""),
            slug=data.get("name", ""),
            title=data.get("name", ""),
            description=data.get("description") or "",
            source_url=data.get("html_url") or "",
            issues_url=f"{data['html_url']}/issues" if data.get("html_url") else "",
        )


@dataclass
class FileInfo:
    """文件信息"""

    url: str
    filename: str
    size: int = 0
    hashes: Optional[Dict[str, str]] = None
    primary: bool = False


@dataclass
class DependencyInfo:
    """依赖信息"""

    project_id: str
    kind: DependencyKind


@dataclass
class VersionEntry:
    """
    版本条目（Modrinth 的 version / CurseForge 的 file 统一为同一形态）。
    """

    id: str
    version: str
    loaders: List[str]
    game_versions: List[str]
    files: List[FileInfo]
    dependencies: List[DependencyInfo] = field(default_factory=list)
    published: Optional[datetime] = None
    version_type: str = "release"

    @property
    def primary_file(self) -> Optional[FileInfo]:
        """优先选择 primary 文件，否则返回第一个文件"""
        for file in self.files:
            if file.primary:
                return file
        return self.files[0] if self.files else None

    def supports_loader(self, loader: Optional[str]) -> bool:
        """未指定加载器或条目为数据包时匹配任意加载器"""
        if not loader:
            return True
        loaders = [value.lower() for value in self.loaders]
        return loader.lower() in loaders or "datapack" in loaders

    @classmethod
    def from_modrinth(cls, data: Dict[str, Any]) -> "VersionEntry":
        """
        将 Modrinth API 返回的版本信息转换为 VersionEntry 对象。
        """
        files = [
            FileInfo(
                url=file.get("url", ""),
                filename=file.get("filename", ""),
                size=file.get("size", 0),
                hashes=file.get("hashes"),
                primary=file.get("primary", False),
            )
            for file in data.get("files", [])
        ]

        dependencies = []
        for dep in data.get("dependencies", []):
            dep_id = dep.get("project_id")
            dep_type = dep.get("dependency_type", "required")
            # incompatible / embedded 直接丢弃
            if not dep_id or dep_type not in ("required", "optional"):
                continue
            dependencies.append(DependencyInfo(dep_id, DependencyKind(dep_type)))

        return cls(
            id=data.get("id", ""),
            version=data.get("version_number", ""),
            loaders=[loader.lower() for loader in data.get("loaders", [])],
            game_versions=list(data.get("game_versions", [])),
            files=files,
            dependencies=dependencies,
            published=parse_timestamp(data.get("date_published")),
            version_type=data.get("version_type", "release"),
        )

    @classmethod
    def from_curseforge(cls, data: Dict[str, Any]) -> "VersionEntry":
        """
        将 CurseForge 文件信息转换为 VersionEntry 对象。

        gameVersions 中混杂了加载器名（Fabric/Forge）、环境（Client/Server）
        与游戏版本，这里拆分开。
        """
        loaders: List[str] = []
        game_versions: List[str] = []
        for value in data.get("gameVersions") or []:
            lowered = str(value).lower()
            if lowered in CURSEFORGE_LOADERS:
                loaders.append(lowered)
            elif is_game_version(value):
                game_versions.append(value)

        file_id = data.get("id", 0)
        filename = data.get("fileName", "")
        url = data.get("downloadUrl") or ""
        if not url and file_id and filename:
            # 作者关闭了第三方下载时 downloadUrl 为 null，走公开 CDN 路径
            url = f"{CURSEFORGE_CDN_URL}/{file_id // 1000}/{file_id % 1000}/{filename}"

        hashes = {}
        for entry in data.get("hashes") or []:
            algo = {1: "sha1", 2: "md5"}.get(entry.get("algo"))
            if algo:
                hashes[algo] = entry.get("value", "")

        dependencies = []
        for dep in data.get("dependencies") or []:
            relation = dep.get("relationType")
            if relation == CF_RELATION_REQUIRED:
                kind = DependencyKind.REQUIRED
            elif relation == CF_RELATION_OPTIONAL:
                kind = DependencyKind.OPTIONAL
            else:
                continue
            dependencies.append(DependencyInfo(str(dep.get("modId", "")), kind))

        release_type = {1: "release", 2: "beta", 3: "alpha"}.get(
            data.get("releaseType"), "release"
        )
        return cls(
            id=str(file_id),
            version=data.get("displayName") or filename,
            loaders=loaders,
            game_versions=game_versions,
            files=[
                FileInfo(
                    url=url,
                    filename=filename,
                    size=data.get("fileLength", 0),
                    hashes=hashes or None,
                    primary=True,
                )
            ],
            dependencies=dependencies,
            published=parse_timestamp(data.get("fileDate")),
            version_type=release_type,
        )


@dataclass
class GitHubAsset:
    name: str
    url: str
    size: int = 0


@dataclass
class GitHubRelease:
    tag: str
    name: str
    assets: List[GitHubAsset]
    published: Optional[datetime] = None
    prerelease: bool = False
    draft: bool = False

    @property
    def version(self) -> str:
        """去掉前导 v 的标签"""
        if self.tag[:1] in ("v", "V") and self.tag[1:2].isdigit():
            return self.tag[1:]
        return self.tag

    @classmethod
    def from_github(cls, data: Dict[str, Any]) -> "GitHubRelease":
        return cls(
            tag=data.get("tag_name", ""),
            name=data.get("name") or "",
            assets=[
                GitHubAsset(
                    name=asset.get("name", ""),
                    url=asset.get("browser_download_url", ""),
                    size=asset.get("size", 0),
                )
                for asset in data.get("assets") or []
            ],
            published=parse_timestamp(data.get("published_at")),
            prerelease=data.get("prerelease", False),
            draft=data.get("draft", False),
        )


class VersionKeyword(Enum):
    LATEST = "latest"
    NEXT = "next"
    CURRENT = "current"


@dataclass(frozen=True)
class VersionSelector:
    """
    版本选择器：Exact(版本号) | LATEST | NEXT | CURRENT

    CURRENT 在进入匹配算法前由解析器替换为 Exact 或 LATEST。
    """

    keyword: Optional[VersionKeyword] = None
    version: str = ""

    @classmethod
    def exact(cls, version: str) -> "VersionSelector":
        return cls(version=version)

    @classmethod
    def latest(cls) -> "VersionSelector":
        return cls(keyword=VersionKeyword.LATEST)

    @classmethod
    def next(cls) -> "VersionSelector":
        return cls(keyword=VersionKeyword.NEXT)

    @classmethod
    def current(cls) -> "VersionSelector":
        return cls(keyword=VersionKeyword.CURRENT)

    @classmethod
    def parse(cls, token: Optional[str]) -> "VersionSelector":
        """空值视为 LATEST，关键字不区分大小写"""
        text = (token or "").strip()
        if not text:
            return cls.latest()
        try:
            return cls(keyword=VersionKeyword(text.lower()))
        except ValueError:
            return cls.exact(text)

    @property
    def is_exact(self) -> bool:
        return self.keyword is None

    def __str__(self) -> str:
        return self.version if self.is_exact else self.keyword.value


@dataclass
class ResolvedArtifact:
    """解析结果（不持久化，每次解析生成）"""

    found: bool
    version: str = ""
    version_url: str = ""
    game_version: str = ""
    jar: str = ""
    dependencies: List[DependencyInfo] = field(default_factory=list)
    error: Optional[str] = None
    available_game_versions: List[str] = field(default_factory=list)
    latest_game_version: str = ""
    size: int = 0
    sha1: str = ""
    project: Optional[ProjectInfo] = None

    @classmethod
    def not_found(cls, error: str) -> "ResolvedArtifact":
        return cls(found=False, error=error)

    def dependency_ids(self, kind: DependencyKind) -> List[str]:
        return [dep.project_id for dep in self.dependencies if dep.kind == kind]

    @property
    def required_dependencies(self) -> str:
        return join_csv_list(self.dependency_ids(DependencyKind.REQUIRED))

    @property
    def optional_dependencies(self) -> str:
        return join_csv_list(self.dependency_ids(DependencyKind.OPTIONAL))
