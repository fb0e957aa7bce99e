"""
版本匹配服务

在注册中心返回的版本列表中挑选与请求版本、加载器、游戏版本最匹配的条目。

- 显式版本号依次尝试：精确匹配、去掉前导 v、追加加载器后缀、子串匹配；
  某一步恰好命中一个候选即停止，否则沿用第一个非空结果做决胜。
- 多个候选共享同一版本号时，按请求游戏版本在候选 game_versions 中的位置打分
  （注册中心把主要兼容版本放在最前），游戏版本得分 ×100 后再加上版本号相似度。
- 没有精确支持请求游戏版本的候选时，同一 minor 线内的旧补丁版本视为兼容。
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from loguru import logger

from modledger.models import VersionEntry
from modledger.utils import (
    highest_game_version,
    is_game_version_compatible,
    strip_v,
    version_segments,
)

PRIORITY_WEIGHT = 100
EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class MatchOutcome:
    """匹配结果"""

    entry: Optional[VersionEntry] = None
    game_version: str = ""
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.entry is not None


def game_version_priority(index: Optional[int]) -> int:
    """游戏版本位置得分：首位 1000，前三位 100，其余 10，不支持 0"""
    if index is None:
        return 0
    if index == 0:
        return 1000
    if index <= 2:
        return 100
    return 10


def similarity(candidate: str, requested: str) -> int:
    """按 . - + 拆分后，请求版本的各段在候选版本中出现的次数"""
    candidate_segments = version_segments(candidate)
    return sum(1 for segment in version_segments(requested) if segment in candidate_segments)


class VersionMatcher:
    """版本匹配器"""

    def matches(self, declared_versions: List[str], game_version: str) -> bool:
        """
        检查声明的游戏版本列表是否兼容目标游戏版本

        Args:
            declared_versions: 候选声明支持的游戏版本
            game_version: 请求的游戏版本

        Returns:
            是否兼容（精确或同 minor 线内向后兼容）
        """
        return any(
            is_game_version_compatible(declared, game_version)
            for declared in declared_versions
        )

    def compatible_position(
        self, entry: VersionEntry, game_version: str
    ) -> Optional[Tuple[int, str, bool]]:
        """
        返回 (位置, 声明的游戏版本, 是否精确)，不兼容时返回 None

        精确支持优先；否则取兼容版本中最高的那个。
        """
        if game_version in entry.game_versions:
            return entry.game_versions.index(game_version), game_version, True

        compatible = [
            (index, declared)
            for index, declared in enumerate(entry.game_versions)
            if is_game_version_compatible(declared, game_version)
        ]
        if not compatible:
            return None
        best = highest_game_version([declared for _, declared in compatible])
        for index, declared in compatible:
            if declared == best:
                return index, declared, False
        return None

    def filter_loader(
        self, entries: List[VersionEntry], loader: Optional[str]
    ) -> List[VersionEntry]:
        return [entry for entry in entries if entry.supports_loader(loader)]

    def narrow_by_game_version(
        self, entries: List[VersionEntry], game_version: str
    ) -> List[VersionEntry]:
        """只保留支持目标游戏版本的候选，没有精确支持时放宽到兼容版本"""
        exact = [entry for entry in entries if game_version in entry.game_versions]
        if exact:
            return exact
        relaxed = [entry for entry in entries if self.matches(entry.game_versions, game_version)]
        if relaxed:
            logger.debug(
                f"[匹配] 没有精确支持 {game_version} 的版本，"
                f"放宽到同 minor 线的 {len(relaxed)} 个旧补丁版本"
            )
        return relaxed

    def match_version(
        self,
        entries: List[VersionEntry],
        version: str,
        loader: Optional[str],
    ) -> List[VersionEntry]:
        """按版本字符串查找候选"""
        candidates = self.filter_loader(entries, loader)
        wanted = version.strip()
        bare = strip_v(wanted)
        lowered = wanted.lower()

        steps: List[Callable[[VersionEntry], bool]] = [
            lambda entry: entry.version == wanted,
            lambda entry: strip_v(entry.version) == bare,
        ]
        if loader:
            suffixed = {f"{bare}-{loader}".lower(), f"{bare}+{loader}".lower()}
            steps.append(lambda entry: strip_v(entry.version).lower() in suffixed)
        steps.append(lambda entry: lowered in entry.version.lower())

        first_match: List[VersionEntry] = []
        for step in steps:
            matched = [entry for entry in candidates if step(entry)]
            if len(matched) == 1:
                return matched
            if matched and not first_match:
                first_match = matched
        return first_match

    def score(self, entry: VersionEntry, requested_version: str, game_version: str) -> int:
        """决胜得分：游戏版本位置得分 ×100 + 版本号相似度"""
        position = self.compatible_position(entry, game_version) if game_version else None
        priority = game_version_priority(position[0] if position else None)
        return priority * PRIORITY_WEIGHT + similarity(entry.version, requested_version)

    def tie_break(
        self,
        candidates: List[VersionEntry],
        requested_version: str,
        game_version: str,
    ) -> VersionEntry:
        """在多个候选中选出得分最高者，同分时保留注册中心原有顺序"""
        if len(candidates) == 1:
            return candidates[0]
        ranked = sorted(
            enumerate(candidates),
            key=lambda pair: (-self.score(pair[1], requested_version, game_version), pair[0]),
        )
        chosen = ranked[0][1]
        logger.info(
            f"[决策] {len(candidates)} 个候选匹配版本 '{requested_version}'，"
            f"按游戏版本 {game_version or '-'} 选择 {chosen.version} "
            f"(ID: {chosen.id}, 支持 {', '.join(chosen.game_versions) or '-'}, "
            f"得分 {self.score(chosen, requested_version, game_version)})"
        )
        return chosen

    def effective_game_version(
        self, entry: VersionEntry, game_version: str, prefer_highest: bool = False
    ) -> str:
        """记录到数据库的游戏版本"""
        if prefer_highest or not game_version:
            return highest_game_version(entry.game_versions) or (
                entry.game_versions[0] if entry.game_versions else game_version
            )
        position = self.compatible_position(entry, game_version)
        if position:
            return position[1]
        return highest_game_version(entry.game_versions) or game_version

    def select_exact(
        self,
        entries: List[VersionEntry],
        version: str,
        loader: Optional[str],
        game_version: str = "",
    ) -> MatchOutcome:
        """解析显式版本号"""
        matched = self.match_version(entries, version, loader)
        if not matched:
            return MatchOutcome(
                error=f"版本 {version} 不存在 (加载器: {loader or '任意'})"
            )

        if game_version:
            narrowed = self.narrow_by_game_version(matched, game_version)
            if not narrowed:
                return MatchOutcome(
                    error=f"版本 {version} 没有适用于游戏版本 {game_version} 的文件"
                )
            matched = narrowed

        chosen = self.tie_break(matched, version, game_version)
        return MatchOutcome(
            entry=chosen,
            game_version=self.effective_game_version(chosen, game_version),
        )

    def select_latest(
        self,
        entries: List[VersionEntry],
        loader: Optional[str],
        game_version: str = "",
        require_game_version: bool = False,
    ) -> MatchOutcome:
        """
        选择发布时间最新的条目

        Args:
            entries: 全部版本
            loader: 加载器（没有匹配时放宽为任意加载器）
            game_version: 目标游戏版本，用于同版本号候选之间的决胜
            require_game_version: 为 True 时只在兼容目标游戏版本的条目中选择（next）
        """
        if not entries:
            return MatchOutcome(error="项目没有任何版本")

        def pool(use_loader: bool) -> List[VersionEntry]:
            candidates = self.filter_loader(entries, loader) if use_loader else list(entries)
            if require_game_version and game_version:
                candidates = self.narrow_by_game_version(candidates, game_version)
            return candidates

        candidates = pool(True)
        if not candidates and loader:
            candidates = pool(False)
            if candidates:
                logger.warning(f"[匹配] 没有适用于加载器 {loader} 的版本，放宽为任意加载器")

        if not candidates:
            if require_game_version and game_version:
                return MatchOutcome(error=f"没有适用于游戏版本 {game_version} 的版本")
            return MatchOutcome(error=f"没有适用于加载器 {loader} 的版本")

        _, newest = max(
            enumerate(candidates),
            key=lambda pair: (pair[1].published or EPOCH, -pair[0]),
        )
        siblings = [entry for entry in candidates if entry.version == newest.version]
        chosen = self.tie_break(siblings, newest.version, game_version)
        return MatchOutcome(
            entry=chosen,
            game_version=self.effective_game_version(
                chosen, game_version, prefer_highest=not require_game_version
            ),
        )
