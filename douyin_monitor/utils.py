"""
通用工具函数模块

包含：
- 时间戳与文件大小格式化
- 文件名清理与字符串哈希
- 共享 HTTP 会话管理
"""

import re
import time
from datetime import datetime
from typing import Optional

import aiohttp

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')


def now_ms() -> int:
    """当前 Unix 时间戳（毫秒）"""
    return int(time.time() * 1000)


def format_datetime(moment: Optional[datetime] = None) -> str:
    """本地时间的可读格式"""
    return (moment or datetime.now()).strftime('%Y-%m-%d %H:%M:%S')


def format_size(size_bytes: int) -> str:
    """格式化文件大小显示"""
    if size_bytes == 0:
        return "0 B"

    size = float(size_bytes)
    size_names = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while size >= 1024 and i < len(size_names) - 1:
        size /= 1024.0
        i += 1

    return f"{size:.1f} {size_names[i]}"


def sanitize_title(text: Optional[str], limit: int = 50, fallback: str = "untitled") -> str:
    """取第一行非空文本作为标题，替换不安全字符并限制长度"""
    for line in (text or "").splitlines():
        line = line.strip()
        if line:
            return _UNSAFE_FILENAME_CHARS.sub('_', line)[:limit]
    return fallback


def string_hash(text: str) -> int:
    """32 位有符号字符串哈希 h = h * 31 + c"""
    h = 0
    for char in text:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def build_timeout(seconds: Optional[float]) -> aiohttp.ClientTimeout:
    """构造 aiohttp 超时配置，None 表示使用默认值"""
    if seconds is None:
        return aiohttp.ClientTimeout()
    return aiohttp.ClientTimeout(total=seconds)


def build_stream_timeout(seconds: Optional[float]) -> aiohttp.ClientTimeout:
    """流式下载的超时：只限制连接和两次读取之间的等待，不限制总时长"""
    if seconds is None:
        return aiohttp.ClientTimeout(total=None)
    return aiohttp.ClientTimeout(total=None, sock_connect=seconds, sock_read=seconds)


class SessionHolder:
    """持有共享的 aiohttp 会话；未注入时按需创建并负责关闭"""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self):
        """只关闭自己创建的会话"""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None


__all__ = [
    "now_ms",
    "format_datetime",
    "format_size",
    "sanitize_title",
    "string_hash",
    "build_timeout",
    "build_stream_timeout",
    "SessionHolder",
]
