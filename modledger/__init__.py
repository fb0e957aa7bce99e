"""
ModLedger - Minecraft 模组版本解析与下载工具
"""

__version__ = "0.1.0"
