"""
API 响应缓存

把项目/版本元数据以 JSON 快照保存在 {api_cache_dir}/{host}/{key}.json。
开启 use_cache 时快照没有过期时间；关闭时仍会复用新鲜度窗口内的快照。
"""

import json
import re
import time
from pathlib import Path
from typing import Any, Optional

import aiofiles
from loguru import logger

UNSAFE_KEY = re.compile(r"[^\w.\-]+")


def cache_key(identifier: str) -> str:
    """把 ID（可能含 / 或 :）转成安全的文件名"""
    return UNSAFE_KEY.sub("-", identifier).strip("-") or "_"


class ApiResponseCache:
    """JSON 快照缓存"""

    def __init__(self, root: Path, freshness: float = 300.0, use_cache: bool = True):
        self.root = Path(root)
        self.freshness = freshness
        self.use_cache = use_cache

    def path(self, host: str, key: str) -> Path:
        return self.root / host / f"{cache_key(key)}.json"

    def is_fresh(self, path: Path) -> bool:
        try:
            age = time.time() - path.stat().st_mtime
        except OSError:
            return False
        return age < self.freshness

    async def load(self, host: str, key: str) -> Optional[Any]:
        """读取快照，不可用时返回 None"""
        path = self.path(host, key)
        if not path.exists():
            return None
        if not self.use_cache and not self.is_fresh(path):
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                data = json.loads(await f.read())
        except (OSError, ValueError) as e:
            logger.warning(f"[缓存] 快照损坏，忽略: {path} ({e})")
            return None
        logger.debug(f"[缓存] 命中 {host}/{path.name}")
        return data

    async def store(self, host: str, key: str, data: Any) -> Path:
        path = self.path(host, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, ensure_ascii=False, indent=2))
        return path
