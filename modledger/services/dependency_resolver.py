"""
依赖处理服务

依赖是指向其它记录的弱引用：注册中心返回的项目 ID 会尽量换算成数据库中
的记录 ID，找不到对应记录的依赖只报告，不视为错误。
"""

from typing import Dict, Iterable, List

from loguru import logger

from modledger.models import ModRecord
from modledger.utils import join_csv_list, split_csv_list

DEPENDENCY_FIELDS = (
    "current_dependencies_required",
    "current_dependencies_optional",
    "latest_dependencies_required",
    "latest_dependencies_optional",
)


class DependencyResolver:
    """依赖解析器"""

    def __init__(self, records: Iterable[ModRecord] = ()):
        self._known: Dict[str, str] = {}
        self._aliases: Dict[str, str] = {}
        for record in records:
            self.add_record(record)

    def add_record(self, record: ModRecord):
        if record.id:
            self._known[record.id.lower()] = record.id

    def add_alias(self, project_id: str, record_id: str):
        """登记注册中心项目 ID 与记录 ID 的对应关系"""
        if project_id and record_id and project_id.lower() != record_id.lower():
            self._aliases[project_id.lower()] = record_id

    def canonical(self, dependency_id: str) -> str:
        """换算成记录 ID，未知时原样返回"""
        key = dependency_id.lower()
        if key in self._aliases:
            return self._aliases[key]
        return self._known.get(key, dependency_id)

    def normalize(self, dependency_ids: Iterable[str]) -> str:
        """换算并拼接为逗号分隔的列表"""
        return join_csv_list(self.canonical(dep) for dep in dependency_ids)

    def is_known(self, dependency_id: str) -> bool:
        return self.canonical(dependency_id).lower() in self._known

    def dangling(self, records: Iterable[ModRecord]) -> Dict[str, List[str]]:
        """
        查找悬空依赖

        Args:
            records: 要检查的记录

        Returns:
            {记录 ID: [数据库中不存在的依赖 ID]}
        """
        missing: Dict[str, List[str]] = {}
        for record in records:
            for field_name in DEPENDENCY_FIELDS:
                for dep in split_csv_list(getattr(record, field_name)):
                    if self.is_known(dep):
                        continue
                    bucket = missing.setdefault(record.id, [])
                    if dep not in bucket:
                        bucket.append(dep)
        return missing

    def report(self, records: Iterable[ModRecord]) -> Dict[str, List[str]]:
        missing = self.dangling(records)
        for record_id, deps in missing.items():
            logger.warning(f"[依赖] {record_id} 引用了数据库中不存在的依赖: {', '.join(deps)}")
        return missing
