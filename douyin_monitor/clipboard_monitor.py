"""
剪贴板监控器模块

串联整个处理流程：
剪贴板变化 → 短链提取 → 远程解析 → (自动下载 → Webhook) → 日志
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import aiohttp
from colorama import Fore, Style

from .clipboard_models import ClipboardSnapshot, LinkRecord, LinkStatus
from .clipboard_poller import ClipboardPoller, PollerConfig
from .config import AppSettings
from .downloader import DownloadManager
from .history import BoundedHistory
from .link_extractor import LinkExtractor
from .log_manager import LogManager
from .notifications import NotificationManager
from .resolver import LinkResolver
from .utils import now_ms
from .webhook_engine import WebhookDispatchEngine
from .webhook_models import WebhookTrigger
from .webhook_store import WebhookStore


class ClipboardMonitor:
    """抖音短链剪贴板监控器

    所有组件都在这里显式创建并注入依赖：
    - 剪贴板历史、链接历史（按内容/链接去重的有界列表）
    - 处理日志（LogManager）
    - 解析器、下载器、Webhook 调度引擎共用同一个 HTTP 会话
    """

    def __init__(self, settings: AppSettings,
                 webhook_store: Optional[WebhookStore] = None,
                 session: Optional[aiohttp.ClientSession] = None,
                 clipboard_reader: Optional[Callable[[], Awaitable[str]]] = None,
                 notifier: Optional[NotificationManager] = None):
        self.settings = settings
        self.logger = logging.getLogger('DouyinMonitor.ClipboardMonitor')
        self.is_running = False

        self.notification_manager = notifier or NotificationManager(
            colored=settings.console_colored,
            enabled=settings.console_enabled,
        )
        self.log_manager = LogManager(settings.max_logs, self.notification_manager)
        self.clipboard_history: BoundedHistory[ClipboardSnapshot] = BoundedHistory(
            settings.max_history, key=lambda snapshot: snapshot.content
        )
        self.link_history: BoundedHistory[LinkRecord] = BoundedHistory(
            settings.max_history, key=lambda record: record.link
        )

        self.link_extractor = LinkExtractor(settings.platform_domain)
        self.webhook_engine = WebhookDispatchEngine(
            store=webhook_store,
            log_sink=self.log_manager.add_log,
            session=session,
            timeout=settings.request_timeout,
        )
        self.resolver = LinkResolver(
            api_url=settings.resolve_api_url,
            log_sink=self.log_manager.add_log,
            session=session,
            timeout=settings.request_timeout,
        )
        self.downloader = DownloadManager(
            settings_provider=lambda: self.settings,
            log_sink=self.log_manager.add_log,
            webhook_engine=self.webhook_engine,
            link_extractor=self.link_extractor,
            session=session,
        )
        self.poller = ClipboardPoller(
            PollerConfig(interval_ms=settings.monitor_interval_ms),
            self.process_clipboard_change,
            reader=clipboard_reader,
        )

        self._tasks: Set[asyncio.Task] = set()
        self.started_at: Optional[datetime] = None

    # ---- 生命周期 ----

    async def start(self):
        """开始监听剪贴板"""
        if self.is_running:
            return
        self.is_running = True
        self.started_at = datetime.now()
        self.logger.info("开始监控剪贴板...")
        self._show_welcome_message()
        await self.poller.start()

    async def stop(self):
        """停止监听并取消尚未完成的处理任务"""
        if not self.is_running:
            return
        self.is_running = False
        await self.poller.stop()

        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self.logger.info("剪贴板监控已停止")
        self._show_farewell_message()

    async def close(self):
        """释放网络资源"""
        await self.resolver.close()
        await self.downloader.close()
        await self.webhook_engine.close()

    async def wait_idle(self):
        """等待所有解析、下载、Webhook 任务结束"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---- 处理流程 ----

    def process_clipboard_change(self, text: str) -> List[LinkRecord]:
        """处理新的剪贴板内容，返回新建的链接记录"""
        self.clipboard_history.insert_front(ClipboardSnapshot(content=text))

        new_records = []
        for link in self.link_extractor.extract(text):
            if self.link_history.contains(link):
                self.logger.debug(f"链接已处理过，跳过: {link}")
                continue
            record = LinkRecord(link=link, original_content=text)
            self.link_history.insert_front(record)
            new_records.append(record)
            self.logger.info(f"🎯 检测到抖音链接: {link}")
            self._spawn(self._resolve_and_act(record))
        return new_records

    async def _resolve_and_act(self, record: LinkRecord):
        """解析单条链接，成功后按设置安排下载并触发 Webhook"""
        resolved = await self.resolver.resolve(record)
        context = self._build_resolve_context(record)

        if resolved:
            if self.settings.auto_download:
                self._spawn(self._delayed_download(record))
            await self.webhook_engine.execute_trigger(WebhookTrigger.RESOLVE_SUCCESS, context)
        else:
            await self.webhook_engine.execute_trigger(WebhookTrigger.RESOLVE_FAILED, context)

    async def _delayed_download(self, record: LinkRecord):
        # 延迟下载，避免频繁请求
        await asyncio.sleep(self.settings.download_delay_ms / 1000)
        await self.downloader.download_video(record.media_url, record.original_content, record.link)

    def _build_resolve_context(self, record: LinkRecord) -> Dict[str, Any]:
        return {
            'originalText': record.original_content,
            'shareLink': record.link,
            'videoUrl': record.media_url,
            'title': record.title,
            'author': record.author,
            'error': record.error,
            'timestamp': now_ms(),
            'dateTime': datetime.now().isoformat(),
        }

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(f"处理任务异常: {exc!r}", exc_info=exc)

    # ---- 设置与历史 ----

    def apply_settings(self, new_settings: AppSettings):
        """应用新的设置（热加载时调用）"""
        old_settings = self.settings
        self.settings = new_settings

        self.poller.set_interval(new_settings.monitor_interval_ms)
        self.log_manager.set_max_logs(new_settings.max_logs)
        self.clipboard_history.resize(new_settings.max_history)
        self.link_history.resize(new_settings.max_history)

        self.resolver.api_url = new_settings.resolve_api_url
        self.resolver.timeout = new_settings.request_timeout
        self.webhook_engine.http_executor.timeout = new_settings.request_timeout
        self.notification_manager.use_colors = new_settings.console_colored
        self.notification_manager.enabled = new_settings.console_enabled

        if new_settings.platform_domain != old_settings.platform_domain:
            self.link_extractor = LinkExtractor(new_settings.platform_domain)
            self.downloader.link_extractor = self.link_extractor

        self.logger.info("⚙️ 设置已更新")

    async def on_settings_reloaded(self, old_settings: AppSettings, new_settings: AppSettings):
        """设置文件热加载回调"""
        self.apply_settings(new_settings)

    def clear_clipboard_history(self):
        """清空剪贴板历史，同一内容再次复制时会重新处理"""
        self.clipboard_history.clear()
        self.poller.reset()
        self.logger.info("🗑️ 剪贴板历史已清空")

    def clear_link_history(self):
        self.link_history.clear()
        self.logger.info("🗑️ 抖音链接历史已清空")

    def clear_logs(self):
        self.log_manager.clear()

    def get_status(self) -> Dict[str, Any]:
        """运行状态快照"""
        link_counts = {status.value: 0 for status in LinkStatus}
        for record in self.link_history:
            link_counts[record.status.value] += 1

        return {
            'running': self.is_running,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'auto_download': self.settings.auto_download,
            'download_path': self.settings.download_path,
            'clipboard_history': len(self.clipboard_history),
            'links': link_counts,
            'pending_tasks': len(self._tasks),
            'downloads_in_flight': len(self.downloader.in_flight),
            'downloads_completed': self.downloader.completed_count,
            'webhooks': len(self.webhook_engine.webhooks),
            'logs': self.log_manager.get_stats(),
        }

    # ---- 控制台输出 ----

    def _show_welcome_message(self):
        """显示欢迎消息"""
        if not self.notification_manager.enabled:
            return

        welcome_lines = [
            "抖音剪贴板监控已启动!",
            f"监控间隔: {self.settings.monitor_interval_ms}毫秒",
            f"自动下载: {'已启用' if self.settings.auto_download else '已禁用'}",
            f"下载目录: {self.settings.download_path or '未设置'}",
            f"命名规则: {self.settings.naming_rule.value}",
            f"Webhook: {len(self.webhook_engine.webhooks)} 个",
            "使用方法:",
            f"   复制包含 https://{self.link_extractor.domain}/ 短链的分享文本 → 自动解析",
            "按Ctrl+C停止监控"
        ]

        if self.notification_manager.use_colors:
            print(f"\n{Fore.GREEN}{'='*70}")
            for line in welcome_lines:
                print(f"{Fore.GREEN}{line}")
            print(f"{'='*70}{Style.RESET_ALL}\n")
        else:
            print(f"\n{'='*70}")
            for line in welcome_lines:
                print(line)
            print(f"{'='*70}\n")

    def _show_farewell_message(self):
        """显示告别消息"""
        if not self.notification_manager.enabled:
            return

        self.notification_manager.send_statistics(self.log_manager.get_stats())
        if self.notification_manager.use_colors:
            print(f"\n{Fore.BLUE}{'='*40}")
            print(f"{Fore.BLUE}👋 抖音剪贴板监控已停止")
            print(f"{Fore.BLUE}{'='*40}{Style.RESET_ALL}\n")
        else:
            print(f"\n{'='*40}")
            print("👋 抖音剪贴板监控已停止")
            print(f"{'='*40}\n")


__all__ = ["ClipboardMonitor"]
