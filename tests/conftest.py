"""
测试配置和共享工具
"""

import asyncio
import json
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from aiohttp.web_request import FileField

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
import sys
sys.path.insert(0, str(project_root))

from douyin_monitor.clipboard_models import LogEntry
from douyin_monitor.config import AppSettings

TEST_DOMAIN = "v.platform.com"


class FakeRemoteServices:
    """进程内的解析接口、视频 CDN 与 Webhook 接收端"""

    def __init__(self):
        self.resolve_responses: Dict[str, Tuple[int, Any]] = {}
        self.resolve_calls: List[str] = []
        self.resolve_delays: Dict[str, float] = {}
        self.resolve_active = 0
        self.resolve_max_active = 0
        self.media: Dict[str, bytes] = {}
        self.media_hits: Dict[str, int] = defaultdict(int)
        self.media_delay = 0.0
        self.slow_chunks: List[bytes] = []
        self.slow_interval = 0.0
        self.hook_statuses: List[int] = []
        self.hook_requests: List[Dict[str, Any]] = []
        self.multipart_requests: List[Dict[str, Any]] = []
        self.server: Optional[TestServer] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/api/douyin', self._resolve)
        app.router.add_get('/media/{name}', self._media)
        app.router.add_get('/slow-media', self._slow_media)
        app.router.add_route('*', '/hook', self._hook)
        app.router.add_post('/multipart', self._multipart)
        return app

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    def add_video(self, link: str, name: str, content: bytes, **extra):
        """登记一条可解析的短链及其视频内容"""
        self.media[name] = content
        data = {'url': self.url(f'/media/{name}')}
        data.update(extra)
        self.resolve_responses[link] = (200, {'code': 200, 'data': data})
        return data['url']

    async def _resolve(self, request: web.Request) -> web.Response:
        link = request.query.get('url', '')
        self.resolve_calls.append(link)
        self.resolve_active += 1
        self.resolve_max_active = max(self.resolve_max_active, self.resolve_active)
        try:
            await asyncio.sleep(self.resolve_delays.get(link, 0))
        finally:
            self.resolve_active -= 1
        status, payload = self.resolve_responses.get(link, (200, {'code': 404, 'msg': '未找到视频'}))
        if isinstance(payload, str):
            return web.Response(status=status, text=payload)
        return web.json_response(payload, status=status)

    async def _media(self, request: web.Request) -> web.Response:
        name = request.match_info['name']
        self.media_hits[name] += 1
        if self.media_delay:
            await asyncio.sleep(self.media_delay)
        if name not in self.media:
            return web.Response(status=404, text='not found')
        return web.Response(body=self.media[name], content_type='video/mp4')

    async def _slow_media(self, request: web.Request) -> web.StreamResponse:
        """按固定间隔逐块发送，模拟传输时间较长的视频"""
        response = web.StreamResponse()
        response.content_type = 'video/mp4'
        await response.prepare(request)
        for chunk in self.slow_chunks:
            await asyncio.sleep(self.slow_interval)
            await response.write(chunk)
        await response.write_eof()
        return response

    async def _hook(self, request: web.Request) -> web.Response:
        body = await request.read()
        self.hook_requests.append({
            'method': request.method,
            'headers': dict(request.headers),
            'body': body,
        })
        status = self.hook_statuses.pop(0) if self.hook_statuses else 200
        return web.Response(status=status, text='ok' if status < 300 else 'server error')

    async def _multipart(self, request: web.Request) -> web.Response:
        form = await request.post()
        fields = {}
        for name, value in form.items():
            if isinstance(value, FileField):
                fields[name] = {'filename': value.filename, 'content': value.file.read()}
            else:
                fields[name] = value
        self.multipart_requests.append(fields)
        return web.json_response({'ok': True})

    def hook_json(self, index: int = -1) -> Any:
        return json.loads(self.hook_requests[index]['body'].decode('utf-8'))


@pytest_asyncio.fixture
async def remote_services():
    """启动模拟远程服务"""
    services = FakeRemoteServices()
    server = TestServer(services.build_app())
    await server.start_server()
    services.server = server
    yield services
    await server.close()


@pytest_asyncio.fixture
async def http_session():
    async with aiohttp.ClientSession() as session:
        yield session


@pytest.fixture
def download_dir(tmp_path):
    return tmp_path / "downloads"


@pytest.fixture
def make_settings(download_dir):
    """构造测试用设置，关闭控制台输出和下载延迟"""
    def factory(**overrides) -> AppSettings:
        values = dict(
            auto_download=False,
            download_path=str(download_dir),
            monitor_interval_ms=50,
            download_delay_ms=0,
            platform_domain=TEST_DOMAIN,
            console_enabled=False,
            console_colored=False,
            request_timeout=10,
        )
        values.update(overrides)
        return AppSettings(**values)
    return factory


class LogCollector:
    """收集日志记录的回调"""

    def __init__(self):
        self.entries: List[LogEntry] = []

    def __call__(self, entry: LogEntry):
        self.entries.append(entry)

    def of_kind(self, kind) -> List[LogEntry]:
        return [entry for entry in self.entries if entry.kind == kind]


@pytest.fixture
def log_collector():
    return LogCollector()


class ClipboardStub:
    """可控的剪贴板读取函数"""

    def __init__(self, content: str = ""):
        self.content = content
        self.reads = 0
        self.error: Optional[Exception] = None

    async def __call__(self) -> str:
        self.reads += 1
        if self.error is not None:
            raise self.error
        return self.content


@pytest.fixture
def clipboard_stub():
    return ClipboardStub()
