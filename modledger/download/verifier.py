"""
下载文件检查

跳过已存在的目标文件之前必须确认它是完整的；缓存文件在复制前按注册中心
提供的 SHA1 校验。
"""

import hashlib
from pathlib import Path
from typing import Optional, Union

import aiofiles

from modledger.services.http import PART_SUFFIX

READ_CHUNK = 1 << 16

PathLike = Union[str, Path]


class FileVerifier:
    """完整性与哈希检查"""

    @staticmethod
    async def calc_sha1(path: PathLike) -> Optional[str]:
        """
        流式计算 SHA1

        Returns:
            十六进制摘要，文件不可读时为 None
        """
        digest = hashlib.sha1()
        try:
            async with aiofiles.open(path, "rb") as stream:
                chunk = await stream.read(READ_CHUNK)
                while chunk:
                    digest.update(chunk)
                    chunk = await stream.read(READ_CHUNK)
        except OSError:
            return None
        return digest.hexdigest()

    @staticmethod
    async def verify_sha1(path: PathLike, expected_sha1: Optional[str]) -> bool:
        """没有预期值时视为通过，比较不区分大小写"""
        if not expected_sha1:
            return True
        actual = await FileVerifier.calc_sha1(path)
        return actual is not None and actual.lower() == expected_sha1.strip().lower()

    @staticmethod
    def get_size(path: PathLike) -> int:
        try:
            return Path(path).stat().st_size
        except OSError:
            return 0

    @staticmethod
    def is_complete(path: PathLike, expected_size: Optional[int] = None) -> bool:
        """
        文件存在、非空、不是 .part 临时文件；给出预期大小时大小必须一致
        """
        path = Path(path)
        if path.name.endswith(PART_SUFFIX) or not path.is_file():
            return False
        size = FileVerifier.get_size(path)
        if expected_size:
            return size == expected_size
        return size > 0
