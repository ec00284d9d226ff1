"""
短链解析器

调用远程解析接口，把平台短链转换为可直接下载的视频地址。
每条记录只尝试一次，失败不自动重试。
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

import aiohttp

from .clipboard_models import LinkRecord, LinkStatus, LogEntry, LogKind
from .config import DEFAULT_RESOLVE_API_URL
from .exceptions import ResolutionError
from .utils import SessionHolder, build_timeout

DEFAULT_ERROR_MESSAGE = "解析失败"


class LinkResolver(SessionHolder):
    """远程解析接口客户端"""

    def __init__(self, api_url: str = DEFAULT_RESOLVE_API_URL,
                 log_sink: Optional[Callable[[LogEntry], Any]] = None,
                 session: Optional[aiohttp.ClientSession] = None,
                 timeout: Optional[float] = 60.0):
        super().__init__(session)
        self.api_url = api_url
        self.log_sink = log_sink
        self.timeout = timeout
        self.logger = logging.getLogger('DouyinMonitor.Resolver')

    async def resolve(self, record: LinkRecord) -> bool:
        """解析一条记录，原地更新状态；返回是否成功，不抛出异常"""
        self.logger.info(f"🔄 正在解析抖音视频: {record.link}")
        try:
            data = await self._lookup(record.link)
        except ResolutionError as e:
            record.status = LinkStatus.FAILED
            record.error = str(e)
            self.logger.error(f"❌ 抖音视频解析失败: {record.link} - {record.error}")
            self._emit(LogEntry(
                kind=LogKind.FAILED,
                original_text=record.original_content,
                source_link=record.link,
                error=record.error,
            ))
            return False

        record.status = LinkStatus.RESOLVED
        record.media_url = data['url']
        record.title = data.get('title') or None
        record.author = data.get('author') or None
        record.error = None
        self.logger.info(f"✅ 抖音视频解析成功: {record.media_url}")
        self._emit(LogEntry(
            kind=LogKind.RESOLVED,
            original_text=record.original_content,
            source_link=record.link,
            media_url=record.media_url,
        ))
        return True

    async def _lookup(self, link: str) -> Dict[str, Any]:
        """请求解析接口，返回响应中的 data 字段"""
        session = await self._get_session()
        try:
            async with session.get(
                self.api_url,
                params={'url': link},
                timeout=build_timeout(self.timeout)
            ) as response:
                if not 200 <= response.status < 300:
                    raise ResolutionError(
                        f"HTTP {response.status}: {response.reason or ''}".rstrip(),
                        link=link,
                        status_code=response.status
                    )
                try:
                    payload = await response.json(content_type=None)
                except (json.JSONDecodeError, ValueError) as e:
                    raise ResolutionError(f"响应格式错误: {str(e)}", link=link,
                                          status_code=response.status) from e
        except aiohttp.ClientError as e:
            raise ResolutionError(f"网络请求失败: {str(e)}", link=link) from e
        except asyncio.TimeoutError as e:
            raise ResolutionError("解析请求超时", link=link) from e

        if not isinstance(payload, dict):
            raise ResolutionError(DEFAULT_ERROR_MESSAGE, link=link)

        code = payload.get('code')
        data = payload.get('data')
        if code == 200 and isinstance(data, dict) and data.get('url'):
            return data

        message = payload.get('msg') or DEFAULT_ERROR_MESSAGE
        raise ResolutionError(str(message), link=link, api_code=code)

    def _emit(self, entry: LogEntry):
        if self.log_sink is not None:
            self.log_sink(entry)


__all__ = ["LinkResolver"]
