"""
文件名与目录规则

(类型, 分组) -> 相对子目录；文件名依次取 Jar 字段、URL 文件名、{ID}-{版本}.jar。
"""

from pathlib import Path
from typing import Optional

from modledger.models import Group, ModRecord, RecordType
from modledger.utils import filename_from_url

TYPE_SUBFOLDERS = {
    RecordType.SHADERPACK.value: "shaderpacks",
    RecordType.DATAPACK.value: "datapacks",
    RecordType.INSTALLER.value: "installer",
    RecordType.MODPACK.value: "modpacks",
    RecordType.LAUNCHER.value: "",
    RecordType.SERVER.value: "",
    RecordType.JDK.value: "jdk",
}


def type_subfolder(record_type: str, group: str = "") -> str:
    """返回相对子目录，空字符串表示版本目录本身"""
    record_type = (record_type or "").lower()
    if record_type in TYPE_SUBFOLDERS:
        return TYPE_SUBFOLDERS[record_type]
    if (group or "").lower() == Group.BLOCK.value:
        return "mods/block"
    return "mods"


def select_filename(
    record: ModRecord,
    url: Optional[str] = None,
    version: str = "",
    use_jar: bool = True,
) -> str:
    """
    选择目标文件名

    Args:
        record: 模组记录
        url: 下载地址
        version: 版本号，用于合成文件名
        use_jar: 为 False 时忽略 Jar 字段（版本系列切换后 Jar 指向的是旧文件）
    """
    if use_jar and record.jar:
        return record.jar
    name = filename_from_url(url)
    if name:
        return name
    return f"{record.id}-{version or 'unknown'}.jar"


def destination_path(root: Path, game_version: str, record: ModRecord, filename: str) -> Path:
    """{下载根目录}/{游戏版本}/{子目录}/{文件名}"""
    folder = Path(root) / (game_version or "unversioned")
    subfolder = type_subfolder(record.type, record.group)
    if subfolder:
        folder = folder / subfolder
    return folder / filename
