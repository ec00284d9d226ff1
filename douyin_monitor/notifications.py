"""
通知管理模块

把每条处理日志以彩色块的形式输出到控制台。
"""

import logging
from typing import Dict

from colorama import Fore, Style, init

from .clipboard_models import LogEntry, LogKind
from .utils import format_datetime

init(autoreset=True)

_TITLES = {
    LogKind.RESOLVED: (Fore.GREEN, "✅ 链接解析成功!"),
    LogKind.FAILED: (Fore.RED, "❌ 处理失败!"),
    LogKind.DOWNLOADED: (Fore.GREEN, "📥 视频下载完成!"),
}


class NotificationManager:
    """简化的控制台通知管理器"""

    def __init__(self, colored: bool = True, enabled: bool = True):
        self.use_colors = colored
        self.enabled = enabled
        self.logger = logging.getLogger('DouyinMonitor.Notification')

    def _truncate(self, text: str, limit: int = 80) -> str:
        text = " ".join((text or "").split())
        return text if len(text) <= limit else text[:limit - 3] + '...'

    def _title_for(self, entry: LogEntry):
        if entry.kind == LogKind.WEBHOOK:
            outcome = entry.webhook_outcome
            if outcome is not None and outcome.succeeded:
                return Fore.MAGENTA, "🔔 Webhook 执行成功"
            return Fore.RED, "🔔 Webhook 执行失败"
        return _TITLES[entry.kind]

    def notify(self, entry: LogEntry):
        """输出一条日志记录"""
        if not self.enabled:
            return

        color, title = self._title_for(entry)
        rows = [
            ("📝 内容", self._truncate(entry.original_text)),
            ("🔗 链接", entry.source_link),
        ]
        if entry.media_url:
            rows.append(("🎬 视频", self._truncate(entry.media_url, 100)))
        if entry.download_path:
            rows.append(("💾 路径", entry.download_path))
        if entry.webhook_outcome is not None:
            rows.append(("⏱️ 耗时", f"{entry.webhook_outcome.duration_ms}ms "
                                    f"(第{entry.webhook_outcome.attempt}次尝试)"))
        if entry.error:
            rows.append(("❌ 错误", entry.error))
        rows.append(("⏰ 时间", format_datetime(entry.occurred_at)))

        if self.use_colors:
            print(f"\n{color}{title}")
            for label, value in rows:
                print(f"{Fore.CYAN}{label}: {Fore.WHITE}{value}")
            print(f"{color}{'─'*60}{Style.RESET_ALL}")
        else:
            print(f"\n{title}")
            for label, value in rows:
                print(f"{label}: {value}")
            print(f"{'─'*60}")

    def send_statistics(self, stats: Dict[str, int]):
        """输出运行统计"""
        if not self.enabled:
            return

        rows = [
            ("日志总数", stats.get('total', 0)),
            ("解析成功", stats.get(LogKind.RESOLVED.value, 0)),
            ("处理失败", stats.get(LogKind.FAILED.value, 0)),
            ("下载完成", stats.get(LogKind.DOWNLOADED.value, 0)),
            ("Webhook", stats.get(LogKind.WEBHOOK.value, 0)),
        ]
        if self.use_colors:
            print(f"\n{Fore.BLUE}📊 运行统计")
            print(f"{Fore.BLUE}{'─'*40}")
            for label, value in rows:
                print(f"{Fore.CYAN}{label}: {Fore.WHITE}{value}")
            print(f"{Fore.BLUE}{'─'*40}{Style.RESET_ALL}")
        else:
            print("\n📊 运行统计")
            print(f"{'-'*40}")
            for label, value in rows:
                print(f"{label}: {value}")
            print(f"{'-'*40}")


__all__ = ["NotificationManager"]
