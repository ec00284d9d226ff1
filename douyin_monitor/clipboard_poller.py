"""
剪贴板轮询器

负责按固定间隔读取剪贴板并检测内容变化。
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import pyperclip

from .exceptions import ClipboardReadError


@dataclass
class PollerConfig:
    interval_ms: int = 500

    @property
    def interval(self) -> float:
        return self.interval_ms / 1000


class ClipboardPoller:
    """管理剪贴板读取频率和变化检测"""

    def __init__(
        self,
        config: PollerConfig,
        on_change: Callable[[str], Any],
        reader: Optional[Callable[[], Awaitable[str]]] = None,
    ):
        self.config = config
        self.on_change = on_change
        self.logger = logging.getLogger('DouyinMonitor.ClipboardPoller')
        self._reader = reader or self._read_clipboard
        self._last_clip: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.clipboard_reads = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_seen_content(self) -> Optional[str]:
        return self._last_clip

    def set_interval(self, interval_ms: int):
        """修改轮询间隔，从下一次等待开始生效"""
        self.config.interval_ms = interval_ms

    async def start(self):
        """开始轮询剪贴板，已在运行时不做任何操作"""
        if self._running:
            return
        self._running = True
        # 启动时立即检查一次
        await self.tick()
        if self._running:
            self._task = asyncio.create_task(self._poll_loop())
            self.logger.info(f"📋 剪贴板监听已启动 (间隔 {self.config.interval_ms}ms)")

    async def stop(self):
        """停止轮询，可重复调用"""
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.info("剪贴板监听已停止")

    def reset(self):
        """忘记上一次的剪贴板内容"""
        self._last_clip = None

    async def _poll_loop(self):
        while self._running:
            await asyncio.sleep(self.config.interval)
            await self.tick()

    async def tick(self):
        """读取一次剪贴板，内容变化时触发回调"""
        try:
            text = await self._reader()
        except Exception as e:
            self.logger.warning(f"读取剪贴板失败: {str(e)}")
            return

        if not self._detect_change(text):
            return

        try:
            result = self.on_change(text)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error(f"处理剪贴板变化失败: {str(e)}", exc_info=True)

    async def _read_clipboard(self) -> str:
        """异步读取剪贴板内容"""
        self.clipboard_reads += 1
        try:
            return await asyncio.to_thread(pyperclip.paste)
        except pyperclip.PyperclipException as e:
            raise ClipboardReadError(f"剪贴板不可用: {str(e)}") from e

    def _detect_change(self, text: Optional[str]) -> bool:
        if not text or text == self._last_clip:
            return False
        self._last_clip = text
        return True


__all__ = ["PollerConfig", "ClipboardPoller"]
