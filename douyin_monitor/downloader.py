"""
视频下载管理

- 自动下载开关与下载目录检查
- 同一视频地址同一时间只下载一次
- 五种文件命名规则
- 下载完成后触发 download_complete Webhook
"""

import asyncio
import logging
import os
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set

import aiofiles
import aiohttp

from .clipboard_models import LogEntry, LogKind
from .config import AppSettings, NamingRule
from .exceptions import DownloadError
from .link_extractor import LinkExtractor
from .utils import SessionHolder, build_stream_timeout, format_size, now_ms, sanitize_title, string_hash
from .webhook_engine import WebhookDispatchEngine
from .webhook_models import WebhookTrigger

CHUNK_SIZE = 64 * 1024


class DownloadStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class DownloadResult:
    status: DownloadStatus
    path: Optional[Path] = None
    error: Optional[str] = None
    reason: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.status == DownloadStatus.COMPLETED


class DownloadManager(SessionHolder):
    """视频下载器"""

    def __init__(self, settings_provider: Callable[[], AppSettings],
                 log_sink: Optional[Callable[[LogEntry], Any]] = None,
                 webhook_engine: Optional[WebhookDispatchEngine] = None,
                 link_extractor: Optional[LinkExtractor] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        super().__init__(session)
        self.settings_provider = settings_provider
        self.log_sink = log_sink
        self.webhook_engine = webhook_engine
        self.link_extractor = link_extractor or LinkExtractor()
        self.logger = logging.getLogger('DouyinMonitor.Downloader')
        self.in_flight: Set[str] = set()
        self._reserved_paths: Set[Path] = set()
        self.completed_count = 0
        self._sequence = 0

    def generate_filename(self, rule: NamingRule, original_text: str, source_link: str) -> str:
        """按命名规则生成文件名"""
        timestamp = now_ms()
        try:
            rule = NamingRule(rule)
        except ValueError:
            rule = NamingRule.TIMESTAMP

        if rule == NamingRule.TITLE:
            return f"{sanitize_title(original_text)}_{timestamp}.mp4"

        if rule == NamingRule.HASH:
            return f"{abs(string_hash(source_link)):x}.mp4"

        if rule == NamingRule.SEQUENTIAL:
            self._sequence += 1
            return f"video_{self._sequence:04d}_{timestamp}.mp4"

        if rule == NamingRule.IDENTIFIER:
            identifier = self.link_extractor.extract_identifier(source_link)
            if identifier is None:
                self.logger.warning(f"⚠️ 无法从链接中提取视频标识符: {source_link}")
                identifier = f"video_{timestamp}"
            return f"{identifier}.mp4"

        return f"{timestamp}_douyin_video.mp4"

    async def download_video(self, media_url: str, original_text: str,
                             source_link: str) -> DownloadResult:
        """下载视频；跳过、成功、失败三种结果都不会抛出异常"""
        settings = self.settings_provider()
        if not settings.auto_download:
            self.logger.info("📥 自动下载已禁用")
            return DownloadResult(DownloadStatus.SKIPPED, reason="自动下载已禁用")

        if not settings.download_path:
            self.logger.info("❌ 未设置下载目录")
            return DownloadResult(DownloadStatus.SKIPPED, reason="未设置下载目录")

        # 检查与加入必须在第一次 await 之前完成
        if media_url in self.in_flight:
            self.logger.info(f"⏳ 该视频正在下载中: {media_url}")
            return DownloadResult(DownloadStatus.SKIPPED, reason="该视频正在下载中")

        self.in_flight.add(media_url)
        start_time = time.monotonic()
        self.logger.info(f"📥 开始下载视频: {media_url}")
        try:
            file_path = await self._download_to(settings, media_url, original_text, source_link)
        except (DownloadError, OSError) as e:
            error = f"下载失败: {str(e)}"
            self.logger.error(f"❌ 视频下载失败: {error}")
            self._emit(LogEntry(
                kind=LogKind.FAILED,
                original_text=original_text,
                source_link=source_link,
                media_url=media_url,
                error=error,
            ))
            return DownloadResult(DownloadStatus.FAILED, error=error)
        finally:
            self.in_flight.discard(media_url)

        self.completed_count += 1
        self.logger.info(f"✅ 视频下载完成: {file_path} ({format_size(file_path.stat().st_size)})")
        self._emit(LogEntry(
            kind=LogKind.DOWNLOADED,
            original_text=original_text,
            source_link=source_link,
            media_url=media_url,
            download_path=str(file_path),
        ))

        if self.webhook_engine is not None:
            context = self._build_context(file_path, original_text, source_link,
                                          media_url, start_time)
            await self.webhook_engine.execute_trigger(WebhookTrigger.DOWNLOAD_COMPLETE, context)

        return DownloadResult(DownloadStatus.COMPLETED, path=file_path)

    async def _download_to(self, settings: AppSettings, media_url: str,
                           original_text: str, source_link: str) -> Path:
        filename = self.generate_filename(settings.naming_rule, original_text, source_link)
        directory = Path(settings.download_path).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        # 目标路径必须在第一次 await 之前占用
        file_path = self._reserve_path(directory / filename)
        tmp_path = file_path.with_name(f"{file_path.name}.{uuid.uuid4().hex[:8]}.part")

        try:
            await self._fetch(settings, media_url, tmp_path, file_path)
        finally:
            self._reserved_paths.discard(file_path)

        return file_path

    def _reserve_path(self, file_path: Path) -> Path:
        """目标文件已存在或正在写入时追加 _1、_2 ... 后缀"""
        candidate = file_path
        index = 0
        while candidate in self._reserved_paths or candidate.exists():
            index += 1
            candidate = file_path.with_name(f"{file_path.stem}_{index}{file_path.suffix}")
        self._reserved_paths.add(candidate)
        return candidate

    async def _fetch(self, settings: AppSettings, media_url: str,
                     tmp_path: Path, file_path: Path):
        session = await self._get_session()
        try:
            async with session.get(media_url, timeout=build_stream_timeout(settings.request_timeout)) as response:
                if not 200 <= response.status < 300:
                    raise DownloadError(
                        f"{response.status} {response.reason or ''}".rstrip(),
                        url=media_url,
                        status_code=response.status
                    )
                async with aiofiles.open(tmp_path, 'wb') as f:
                    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                        await f.write(chunk)
            os.replace(tmp_path, file_path)
        except aiohttp.ClientError as e:
            raise DownloadError(str(e), url=media_url) from e
        except asyncio.TimeoutError as e:
            raise DownloadError("下载超时", url=media_url) from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def _build_context(self, file_path: Path, original_text: str, source_link: str,
                       media_url: str, start_time: float) -> Dict[str, Any]:
        return {
            'filePath': str(file_path),
            'fileName': file_path.name,
            'fileSize': file_path.stat().st_size,
            'originalText': original_text,
            'shareLink': source_link,
            'videoUrl': media_url,
            'timestamp': now_ms(),
            'dateTime': datetime.now().isoformat(),
            'downloadDuration': int((time.monotonic() - start_time) * 1000),
        }

    def _emit(self, entry: LogEntry):
        if self.log_sink is not None:
            self.log_sink(entry)


__all__ = ["DownloadStatus", "DownloadResult", "DownloadManager"]
