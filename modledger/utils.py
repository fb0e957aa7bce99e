import hashlib
import re
from pathlib import PurePosixPath
from typing import Iterable, List, Optional, Tuple
from urllib.parse import unquote, urlparse

GAME_VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)(?:\.(\d+))?$")
SEGMENT_SPLIT = re.compile(r"[.\-+]")


def parse_game_version(value: Optional[str]) -> Optional[Tuple[int, int, int]]:
    """把 `1.21` / `1.21.5` 解析为 (major, minor, patch)，快照等非正式版本返回 None"""
    if not value:
        return None
    match = GAME_VERSION_PATTERN.match(value.strip())
    if not match:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch or 0)


def is_game_version(value: Optional[str]) -> bool:
    return parse_game_version(value) is not None


def game_version_key(value: str) -> Tuple[int, Tuple[int, int, int], str]:
    """排序键：可解析的版本按数值排序，不可解析的排在最前"""
    parsed = parse_game_version(value)
    if parsed is None:
        return 0, (0, 0, 0), value
    return 1, parsed, value


def is_game_version_compatible(declared: str, requested: str) -> bool:
    """
    判断声明的游戏版本是否兼容请求的游戏版本

    同一 minor 线内，旧补丁版本兼容新补丁版本（1.21.4 兼容 1.21.5），
    反之不成立；无法解析的版本只做精确匹配。
    """
    if declared == requested:
        return True
    declared_parts = parse_game_version(declared)
    requested_parts = parse_game_version(requested)
    if declared_parts is None or requested_parts is None:
        return False
    return (
        declared_parts[:2] == requested_parts[:2]
        and declared_parts[2] <= requested_parts[2]
    )


def highest_game_version(versions: Iterable[str]) -> Optional[str]:
    """返回数值最高的正式游戏版本"""
    candidates = [v for v in versions if is_game_version(v)]
    if not candidates:
        return None
    return max(candidates, key=game_version_key)


def strip_v(version: str) -> str:
    if version[:1] in ("v", "V") and version[1:2].isdigit():
        return version[1:]
    return version


def version_segments(version: str) -> List[str]:
    """按 . - + 拆分版本号"""
    return [segment for segment in SEGMENT_SPLIT.split(version.lower()) if segment]


def filename_from_url(url: Optional[str]) -> str:
    """取 URL 路径最后一段并做 URL 解码，无法取得时返回空字符串"""
    if not url:
        return ""
    path = urlparse(url).path
    if not path or path.endswith("/"):
        return ""
    return unquote(PurePosixPath(path).name)


def sha256_text(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def split_csv_list(value: Optional[str]) -> List[str]:
    """拆分逗号分隔的字段"""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def join_csv_list(values: Iterable[str]) -> str:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return ",".join(seen)
