"""
下载管理器

先把文件下载进缓存，再从缓存复制到目标路径；同一个 URL 只下载一次，
无论有多少个目标路径引用它。目标文件同样经由 .part 临时文件原子替换。
"""

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from modledger.download.cache import ArtifactCache
from modledger.download.verifier import FileVerifier
from modledger.exceptions import DownloadChecksumError, DownloadFileError
from modledger.services.http import PART_SUFFIX, HttpClient


@dataclass
class DownloadStats:
    """下载统计"""

    completed: int = 0
    cache_hits: int = 0
    failed: int = 0
    bytes_downloaded: int = 0


@dataclass
class DownloadOutcome:
    """单个文件的下载结果"""

    path: Path
    size: int
    from_cache: bool = False


class DownloadManager:
    """下载管理器"""

    def __init__(
        self,
        http: HttpClient,
        cache: ArtifactCache,
        verifier: Optional[FileVerifier] = None,
    ):
        self.http = http
        self.cache = cache
        self.verifier = verifier or FileVerifier()
        self.stats = DownloadStats()

    async def fetch(
        self,
        url: str,
        dest: Path,
        expected_sha1: Optional[str] = None,
        host: Optional[str] = None,
    ) -> DownloadOutcome:
        """
        下载单个文件到 dest

        Args:
            url: 下载地址（支持 file:// 本地文件）
            dest: 目标路径
            expected_sha1: 预期的 SHA1，提供时校验缓存文件
            host: 注册中心名称，决定缓存子目录

        Returns:
            DownloadOutcome
        """
        dest = Path(dest)
        try:
            if url.startswith("file://"):
                return self._copy_local_file(url[7:], dest)

            cache_path = self.cache.path_for(url, host)
            from_cache = self.verifier.is_complete(str(cache_path))
            if from_cache:
                self.stats.cache_hits += 1
                logger.info(f"[缓存] 命中 {cache_path.name}")
            else:
                logger.info(f"[下载] {url}")
                size = await self.http.download(url, cache_path)
                self.stats.bytes_downloaded += size
                logger.debug(f"[缓存] 已写入 {cache_path} ({size} 字节)")

            if expected_sha1 and not await self.verifier.verify_sha1(
                str(cache_path), expected_sha1
            ):
                cache_path.unlink()
                raise DownloadChecksumError(
                    f"SHA1 校验失败: {dest.name}",
                    context={"url": url, "expected": expected_sha1},
                )

            size = self._place(cache_path, dest)
        except Exception:
            self.stats.failed += 1
            raise

        self.stats.completed += 1
        logger.success(f"[完成] '{dest.name}' ({size / (1024 * 1024):.2f} MB)")
        return DownloadOutcome(path=dest, size=size, from_cache=from_cache)

    def _place(self, source: Path, dest: Path) -> int:
        """复制到 dest.part 后原子重命名"""
        part_path = dest.with_name(dest.name + PART_SUFFIX)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, part_path)
            os.replace(part_path, dest)
        except OSError as e:
            if part_path.exists():
                part_path.unlink()
            raise DownloadFileError(
                f"写入文件失败: {dest}", context={"error": str(e), "path": str(dest)}
            ) from e
        return self.verifier.get_size(str(dest))

    def _copy_local_file(self, src_path: str, dest: Path) -> DownloadOutcome:
        """复制本地文件"""
        if not os.path.isfile(src_path):
            raise DownloadFileError(
                f"本地文件不存在: {src_path}", context={"path": src_path}
            )
        logger.info(f"[复制] 本地文件: {os.path.basename(src_path)}")
        size = self._place(Path(src_path), dest)
        self.stats.completed += 1
        return DownloadOutcome(path=dest, size=size)
