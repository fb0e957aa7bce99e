"""
ModLedger 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, Optional


class ModLedgerError(Exception):
    """ModLedger 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(ModLedgerError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class MissingAPIKeyError(ConfigError):
    """缺少 API 密钥（在发出任何请求之前抛出）"""

    def _get_default_code(self) -> str:
        return "E103"


class APIError(ModLedgerError):
    """API 相关错误"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        status: Optional[int] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message, code, context)
        self.status = status
        self.url = url
        if status is not None:
            self.context["status_code"] = status
        if url:
            self.context["url"] = url

    def _get_default_code(self) -> str:
        return "E200"


class NetworkError(APIError):
    """网络错误（超时、连接失败）"""

    def _get_default_code(self) -> str:
        return "E201"


class APINotFoundError(APIError):
    """API 资源不存在"""

    def _get_default_code(self) -> str:
        return "E404"


class APIRateLimitError(APIError):
    """API 速率限制"""

    def _get_default_code(self) -> str:
        return "E429"


class APIServerError(APIError):
    """API 服务器错误"""

    def _get_default_code(self) -> str:
        return "E500"


class DownloadError(ModLedgerError):
    """下载相关错误"""

    def _get_default_code(self) -> str:
        return "E300"


class DownloadNetworkError(DownloadError):
    """下载网络错误"""

    def _get_default_code(self) -> str:
        return "E301"


class DownloadChecksumError(DownloadError):
    """下载校验错误"""

    def _get_default_code(self) -> str:
        return "E302"


class DownloadFileError(DownloadError):
    """下载文件操作错误"""

    def _get_default_code(self) -> str:
        return "E303"


class RecordStoreError(ModLedgerError):
    """模组数据库读写错误"""

    def _get_default_code(self) -> str:
        return "E600"


class DuplicateRecordError(RecordStoreError):
    """数据库中已存在相同 ID 的记录"""

    def _get_default_code(self) -> str:
        return "E601"


class ResolutionError(ModLedgerError):
    """版本解析失败"""

    def _get_default_code(self) -> str:
        return "E700"


class MissingSystemFileError(ResolutionError):
    """
    缺少系统文件

    目标游戏版本没有对应的 installer/launcher/server/jdk 记录，
    通常意味着数据库需要新增一行，而不是重试。
    """

    def _get_default_code(self) -> str:
        return "E701"


RETRYABLE_ERRORS = (
    APIRateLimitError,
    APIServerError,
    NetworkError,
    DownloadNetworkError,
)


def is_retryable(error: BaseException) -> bool:
    """判断异常是否可重试（429、5xx、超时与连接错误）"""
    return isinstance(error, RETRYABLE_ERRORS)


__all__ = [
    # 基础异常
    "ModLedgerError",
    # 配置异常
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    "MissingAPIKeyError",
    # API 异常
    "APIError",
    "NetworkError",
    "APINotFoundError",
    "APIRateLimitError",
    "APIServerError",
    # 下载异常
    "DownloadError",
    "DownloadNetworkError",
    "DownloadChecksumError",
    "DownloadFileError",
    # 数据库异常
    "RecordStoreError",
    "DuplicateRecordError",
    # 解析异常
    "ResolutionError",
    "MissingSystemFileError",
    "RETRYABLE_ERRORS",
    "is_retryable",
]
