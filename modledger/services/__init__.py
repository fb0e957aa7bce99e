"""
ModLedger 服务层

包含业务逻辑服务：HTTP 层、注册中心客户端、版本匹配、版本解析、依赖处理、记录更新。
"""

from modledger.services.http import HttpClient, RetryPolicy, retry_call
from modledger.services.response_cache import ApiResponseCache
from modledger.services.api_client import ModrinthClient, RegistryClient
from modledger.services.curseforge_client import CurseForgeClient
from modledger.services.github_client import GitHubClient
from modledger.services.meta_client import FabricMetaClient, MojangClient
from modledger.services.version_matcher import VersionMatcher
from modledger.services.mod_resolver import VersionResolver
from modledger.services.dependency_resolver import DependencyResolver
from modledger.services.updater import RecordUpdater

__all__ = [
    "HttpClient",
    "RetryPolicy",
    "retry_call",
    "ApiResponseCache",
    "ModrinthClient",
    "RegistryClient",
    "CurseForgeClient",
    "GitHubClient",
    "FabricMetaClient",
    "MojangClient",
    "VersionMatcher",
    "VersionResolver",
    "DependencyResolver",
    "RecordUpdater",
]
