"""
ModLedger 下载层

包含下载缓存、文件名与目录规则、下载管理、文件校验等功能。
"""

from modledger.download.cache import ArtifactCache, cache_key
from modledger.download.manager import DownloadManager, DownloadOutcome, DownloadStats
from modledger.download.paths import destination_path, select_filename, type_subfolder
from modledger.download.verifier import FileVerifier

__all__ = [
    "ArtifactCache",
    "cache_key",
    "DownloadManager",
    "DownloadOutcome",
    "DownloadStats",
    "destination_path",
    "select_filename",
    "type_subfolder",
    "FileVerifier",
]
