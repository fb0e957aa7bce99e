"""
CSV 记录库

整个文件一次读入、一次写出，不在下载期间保持打开。
保存时保留原有列顺序（旧列名换成规范名）与行顺序，缺少的规范列追加在末尾。
"""

import csv
import os
from pathlib import Path
from typing import Iterator, List, Optional

from loguru import logger

from modledger.exceptions import DuplicateRecordError, RecordStoreError
from modledger.models import COLUMNS, ModRecord
from modledger.models.record import LEGACY_HEADERS


class RecordStore:
    """模组记录库"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.records: List[ModRecord] = []
        self.headers: List[str] = [header for _, header in COLUMNS]
        self.modified_externally: List[str] = []

    def load(self) -> List[ModRecord]:
        """读取全部记录（文件不存在时为空库）"""
        if not self.path.exists():
            logger.info(f"[记录] 数据库不存在，将新建: {self.path}")
            self.records = []
            return self.records

        try:
            with open(self.path, "r", encoding="utf-8-sig", newline="") as f:
                reader = csv.DictReader(f)
                original = list(reader.fieldnames or [])
                rows = list(reader)
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise RecordStoreError(
                f"无法读取数据库: {self.path}", context={"error": str(e)}
            ) from e

        migrated = [header for header in original if header in LEGACY_HEADERS]
        if migrated:
            logger.info(f"[记录] 迁移旧列名: {', '.join(migrated)}")
        headers: List[str] = []
        for header in original:
            header = LEGACY_HEADERS.get(header, header)
            if header not in headers:
                headers.append(header)
        for _, header in COLUMNS:
            if header not in headers:
                headers.append(header)
        self.headers = headers

        self.records = [ModRecord.from_row(row) for row in rows]
        self.modified_externally = [
            record.id for record in self.records if record.externally_modified
        ]
        for record_id in self.modified_externally:
            logger.warning(f"[记录] {record_id} 的 RecordHash 不匹配，记录已被外部修改")
        logger.debug(f"[记录] 已加载 {len(self.records)} 条记录")
        return self.records

    def save(self):
        """写回整个文件（先写临时文件再替换）"""
        headers = list(self.headers)
        for record in self.records:
            for key in record.extra:
                if key not in headers:
                    headers.append(key)

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8", newline="") as f:
                writer = csv.DictWriter(f, fieldnames=headers, extrasaction="ignore")
                writer.writeheader()
                for record in self.records:
                    writer.writerow(record.to_row())
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise RecordStoreError(
                f"无法写入数据库: {self.path}", context={"error": str(e)}
            ) from e
        logger.debug(f"[记录] 已保存 {len(self.records)} 条记录到 {self.path}")

    def __iter__(self) -> Iterator[ModRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def find(self, record_id: str) -> Optional[ModRecord]:
        """按 ID 查找（不区分大小写）"""
        wanted = record_id.lower()
        for record in self.records:
            if record.id.lower() == wanted:
                return record
        return None

    def find_siblings(self, name: str, record_type: str) -> List[ModRecord]:
        """同名同类型的系统文件记录（每个游戏版本一行）"""
        return [
            record
            for record in self.records
            if record.name == name and record.type.lower() == record_type.lower()
        ]

    def add(self, record: ModRecord) -> ModRecord:
        """追加记录，ID 重复时抛出 DuplicateRecordError"""
        if not record.is_system and self.find(record.id):
            raise DuplicateRecordError(
                f"记录已存在: {record.id}", context={"id": record.id}
            )
        if record.is_system and any(
            sibling.current_game_version == record.current_game_version
            for sibling in self.find_siblings(record.name, record.type)
        ):
            raise DuplicateRecordError(
                f"系统文件已存在: {record.name} ({record.current_game_version})",
                context={"name": record.name, "game_version": record.current_game_version},
            )
        record.refresh_hash()
        self.records.append(record)
        return record
