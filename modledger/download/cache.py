"""
下载缓存

缓存键是下载 URL 的 SHA-256 前 16 位，相同 URL 总是落在同一个文件上。
每个注册中心一个子目录；缓存只增不改，没有过期时间，URL 变化时键随之变化。
"""

from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from modledger.utils import filename_from_url, sha256_text

CACHE_KEY_LENGTH = 16


def cache_key(url: str) -> str:
    return sha256_text(url)[:CACHE_KEY_LENGTH]


class ArtifactCache:
    """按 URL 内容寻址的文件缓存"""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, url: str, host: Optional[str] = None) -> Path:
        """
        {root}/{注册中心}/{缓存键}-{文件名}

        没有给出注册中心时退回 URL 的主机名
        """
        folder = (host or urlparse(url).hostname or "local").lower()
        filename = filename_from_url(url) or "artifact"
        return self.root / folder / f"{cache_key(url)}-{filename}"

    def contains(self, url: str, host: Optional[str] = None) -> bool:
        path = self.path_for(url, host)
        return path.is_file() and path.stat().st_size > 0
