"""
处理日志管理

保存最近的处理日志（最新在前，超出上限时淘汰最旧的），
统计各类日志数量，并把每条新日志转发给控制台通知。
"""

import logging
from typing import Dict, List, Optional

from .clipboard_models import LogEntry, LogKind
from .history import BoundedHistory
from .notifications import NotificationManager


class LogManager:
    """有界日志存储"""

    def __init__(self, max_logs: int = 100,
                 notifier: Optional[NotificationManager] = None):
        self.logger = logging.getLogger('DouyinMonitor.LogManager')
        self._logs: BoundedHistory[LogEntry] = BoundedHistory(max_logs)
        self.notifier = notifier

    def add_log(self, entry: LogEntry) -> LogEntry:
        """记录一条日志"""
        self._logs.insert_front(entry)
        self.logger.debug(f"新增日志 [{entry.kind.value}] {entry.source_link}")
        if self.notifier is not None:
            try:
                self.notifier.notify(entry)
            except Exception as e:
                self.logger.warning(f"控制台通知失败: {str(e)}")
        return entry

    def get_logs(self, kind: Optional[LogKind] = None) -> List[LogEntry]:
        """获取日志，可按类型过滤"""
        logs = self._logs.to_list()
        if kind is None:
            return logs
        return [entry for entry in logs if entry.kind == kind]

    def get_stats(self) -> Dict[str, int]:
        """各类日志数量统计"""
        stats = {'total': len(self._logs)}
        for kind in LogKind:
            stats[kind.value] = 0
        for entry in self._logs:
            stats[entry.kind.value] += 1
        return stats

    def set_max_logs(self, max_logs: int):
        """调整日志上限，立即裁剪"""
        self._logs.resize(max_logs)

    @property
    def max_logs(self) -> int:
        return self._logs.capacity

    def clear(self):
        self._logs.clear()
        self.logger.info("🧹 日志已清空")

    def __len__(self) -> int:
        return len(self._logs)


__all__ = ["LogManager"]
