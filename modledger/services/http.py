"""
HTTP 请求层

所有注册中心客户端与下载器共享的重试策略和 aiohttp 会话封装。
批处理是顺序执行的，同一时刻只有一个请求在进行。
"""

import asyncio
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import aiofiles
import aiohttp
from loguru import logger

from modledger.exceptions import (
    APIError,
    APINotFoundError,
    APIRateLimitError,
    APIServerError,
    DownloadError,
    DownloadFileError,
    DownloadNetworkError,
    NetworkError,
    is_retryable,
)
from modledger.models.config import ModLedgerConfig, NetworkConfig

T = TypeVar("T")

PART_SUFFIX = ".part"


@dataclass
class RetryPolicy:
    """重试策略：可重试判定 + 指数退避时间表"""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    retryable: Callable[[BaseException], bool] = is_retryable

    @classmethod
    def from_config(cls, network: NetworkConfig) -> "RetryPolicy":
        return cls(
            max_retries=network.max_retries,
            base_delay=network.retry_delay,
            max_delay=network.max_retry_delay,
        )

    def delay(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """第 attempt 次失败后的等待时间，429 时尊重 Retry-After"""
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        retry_after = getattr(error, "context", {}).get("retry_after")
        if retry_after:
            delay = min(max(delay, float(retry_after)), self.max_delay)
        return delay

    def schedule(self) -> List[float]:
        return [self.delay(attempt) for attempt in range(self.max_retries)]


async def retry_call(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    describe: str = "请求",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    按重试策略执行异步操作

    不可重试的异常立即抛出；可重试的异常在用尽次数后抛出最后一次的异常。
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if not policy.retryable(e) or attempt >= policy.max_retries:
                raise
            delay = policy.delay(attempt, e)
            logger.warning(
                f"[重试] {describe} 失败 (第 {attempt + 1} 次): {e}. "
                f"{delay:.1f}s 后重试..."
            )
            await sleep(delay)
            attempt += 1


def _retry_after(headers) -> Optional[float]:
    """Retry-After 秒数；GitHub 只给出 X-RateLimit-Reset 时间戳"""
    if not headers:
        return None
    try:
        value = headers.get("Retry-After")
        if value:
            return max(0.0, float(value))
        reset = headers.get("X-RateLimit-Reset")
        if reset:
            return max(0.0, float(reset) - time.time())
    except ValueError:
        return None
    return None


def _rate_limited(status: int, headers) -> bool:
    """429，或 GitHub 配额耗尽时的 403"""
    if status == 429:
        return True
    return status == 403 and bool(headers) and headers.get("X-RateLimit-Remaining") == "0"


def status_error(status: int, url: str, headers=None) -> APIError:
    """把非 200 状态码映射为对应的 API 异常"""
    if status == 404:
        return APINotFoundError(f"资源不存在: {url}", status=status, url=url)
    if _rate_limited(status, headers):
        error = APIRateLimitError(f"触发速率限制: {url}", status=status, url=url)
        retry_after = _retry_after(headers)
        if retry_after is not None:
            error.context["retry_after"] = retry_after
        return error
    if status >= 500:
        return APIServerError(
            f"服务器错误 (状态码: {status}): {url}", status=status, url=url
        )
    return APIError(f"API 请求失败 (状态码: {status}): {url}", status=status, url=url)


class HttpClient:
    """带重试与超时的 HTTP 客户端"""

    def __init__(
        self,
        config: ModLedgerConfig,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.config = config
        self.policy = RetryPolicy.from_config(config.network)
        self._session = session
        self._owned_session = session is None
        self._sleep = sleep or asyncio.sleep

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.network.timeout),
                headers={"User-Agent": self.config.api.user_agent},
            )
            self._owned_session = True
        return self._session

    async def _get_json_once(
        self,
        url: str,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> Any:
        try:
            async with self.session.get(url, params=params, headers=headers) as response:
                if response.status != 200:
                    raise status_error(response.status, str(response.url), response.headers)
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise APIError(
                        f"响应不是合法的 JSON: {url}", status=response.status, url=url
                    ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"网络错误: {e}", url=url) from e
        except asyncio.TimeoutError as e:
            raise NetworkError(f"请求超时: {url}", url=url) from e

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """GET 并解析 JSON，429/5xx/网络错误按策略重试"""
        logger.debug(f"[请求] GET {url} {params or ''}")
        return await retry_call(
            lambda: self._get_json_once(url, params, headers),
            self.policy,
            describe=f"GET {url}",
            sleep=self._sleep,
        )

    async def _download_once(
        self, url: str, part_path: Path, headers: Optional[Dict[str, str]]
    ) -> int:
        try:
            async with self.session.get(url, headers=headers) as response:
                if response.status != 200:
                    error = status_error(response.status, str(response.url), response.headers)
                    if is_retryable(error):
                        raise DownloadNetworkError(
                            f"HTTP {response.status}",
                            context={"url": url, "status": response.status},
                        )
                    raise DownloadError(
                        f"HTTP {response.status}",
                        context={"url": url, "status": response.status},
                    )

                expected = response.content_length
                if response.headers.get("Content-Encoding"):
                    expected = None

                written = 0
                next_report = 25
                async with aiofiles.open(part_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(
                        self.config.network.chunk_size
                    ):
                        await f.write(chunk)
                        written += len(chunk)
                        if expected:
                            percent = written * 100 / expected
                            if percent >= next_report:
                                logger.debug(f"[进度] {part_path.name}: {percent:.0f}%")
                                next_report += 25

                if expected is not None and written != expected:
                    raise DownloadNetworkError(
                        f"下载不完整: 预期 {expected} 字节，实际 {written} 字节",
                        context={"url": url},
                    )
                return written
        except aiohttp.ClientError as e:
            raise DownloadNetworkError(f"网络错误: {e}", context={"url": url}) from e
        except asyncio.TimeoutError as e:
            raise DownloadNetworkError(f"下载超时: {url}", context={"url": url}) from e

    async def download(
        self,
        url: str,
        dest: Path,
        headers: Optional[Dict[str, str]] = None,
    ) -> int:
        """
        流式下载到 dest

        先写入 dest.part，完成后原子重命名；失败时删除不完整的文件。

        Returns:
            写入的字节数
        """
        dest = Path(dest)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadFileError(f"无法创建目录: {dest.parent}") from e
        part_path = dest.with_name(dest.name + PART_SUFFIX)

        async def attempt() -> int:
            try:
                return await self._download_once(url, part_path, headers)
            except BaseException:
                # 清理不完整的文件
                if part_path.exists():
                    try:
                        part_path.unlink()
                    except OSError:
                        logger.warning(f"[清理] 无法删除不完整文件: {part_path}")
                raise

        size = await retry_call(
            attempt, self.policy, describe=f"下载 {dest.name}", sleep=self._sleep
        )
        os.replace(part_path, dest)
        return size

    async def close(self):
        """关闭客户端"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()
