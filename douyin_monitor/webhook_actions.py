"""
Webhook 执行能力

- HttpWebhookExecutor: 按配置构造并发送 HTTP 请求
- CommandWebhookExecutor: 在 shell 中执行本地命令，支持超时终止

执行器只负责"执行一次并返回结果"，不抛出异常；重试由调度引擎负责。
"""

import asyncio
import json
import logging
import os
import shlex
import signal
import subprocess
import time
import urllib.parse
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import aiofiles
import aiohttp

from .utils import SessionHolder, build_timeout
from .webhook_models import (
    CommandActionConfig,
    FormBody,
    HttpActionConfig,
    JsonBody,
    MultipartBody,
    RawBody,
    render_action_config,
)

RESPONSE_PREVIEW_LIMIT = 500
TERMINATE_GRACE_SECONDS = 5.0
TERMINATE_POLL_SECONDS = 0.05


@dataclass
class HttpActionResult:
    success: bool
    status: Optional[int] = None
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    duration_ms: int = 0


@dataclass
class CommandActionResult:
    success: bool
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None
    duration_ms: int = 0
    timed_out: bool = False


class _BodyError(Exception):
    """请求体构造失败"""


class HttpWebhookExecutor(SessionHolder):
    """HTTP Webhook 执行器"""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None,
                 timeout: Optional[float] = 60.0):
        super().__init__(session)
        self.timeout = timeout
        self.logger = logging.getLogger('DouyinMonitor.Webhook.Http')

    async def execute(self, config: HttpActionConfig,
                      context: Mapping[str, Any]) -> HttpActionResult:
        """替换变量后发送一次请求，2xx 视为成功"""
        start_time = time.monotonic()
        rendered = render_action_config(config, context)
        headers = dict(rendered.headers or {})

        try:
            data = await self._build_body(rendered, headers)
        except _BodyError as e:
            return HttpActionResult(success=False, error=str(e),
                                    duration_ms=_elapsed_ms(start_time))

        self.logger.debug(f"📡 {rendered.method} {rendered.url}")
        session = await self._get_session()
        try:
            async with session.request(
                rendered.method,
                rendered.url,
                headers=headers,
                data=data,
                timeout=build_timeout(self.timeout)
            ) as response:
                text = await response.text(errors='replace')
                result = HttpActionResult(
                    success=200 <= response.status < 300,
                    status=response.status,
                    data=_parse_response(text),
                    headers=dict(response.headers),
                )
                if not result.success:
                    result.error = f"HTTP {response.status}: {text[:RESPONSE_PREVIEW_LIMIT]}"
        except aiohttp.ClientError as e:
            result = HttpActionResult(success=False, error=f"网络请求失败: {str(e)}")
        except asyncio.TimeoutError:
            result = HttpActionResult(success=False, error="请求超时")

        result.duration_ms = _elapsed_ms(start_time)
        return result

    async def _build_body(self, config: HttpActionConfig,
                          headers: Dict[str, str]) -> Union[None, str, bytes, aiohttp.MultipartWriter]:
        body = config.body
        if body is None:
            return None

        if isinstance(body, JsonBody):
            payload = body.data
            if isinstance(payload, str):
                try:
                    payload = json.loads(payload)
                except json.JSONDecodeError as e:
                    raise _BodyError(f"JSON格式错误: {str(e)}") from e
            _set_default_header(headers, 'Content-Type', 'application/json')
            return json.dumps(payload, ensure_ascii=False).encode('utf-8')

        if isinstance(body, FormBody):
            _set_default_header(headers, 'Content-Type', 'application/x-www-form-urlencoded')
            return urllib.parse.urlencode([(f.name, f.value) for f in body.fields])

        if isinstance(body, RawBody):
            _set_default_header(headers, 'Content-Type', 'text/plain; charset=utf-8')
            return body.data.encode('utf-8')

        if isinstance(body, MultipartBody):
            # multipart 的 Content-Type 必须带 boundary，由 aiohttp 生成
            for key in [k for k in headers if k.lower() == 'content-type']:
                del headers[key]
            return await self._build_multipart(body)

        raise _BodyError(f"不支持的请求体类型: {body.type}")

    async def _build_multipart(self, body: MultipartBody) -> aiohttp.MultipartWriter:
        writer = aiohttp.MultipartWriter('form-data')
        for item in body.fields:
            if item.type == 'file':
                filename, content = await _read_file(item.value)
                part = writer.append(content, {'Content-Type': 'application/octet-stream'})
                part.set_content_disposition('form-data', name=item.name, filename=filename)
            else:
                part = writer.append(item.value, {'Content-Type': 'text/plain; charset=utf-8'})
                part.set_content_disposition('form-data', name=item.name)
        return writer


class CommandWebhookExecutor:
    """命令行 Webhook 执行器"""

    def __init__(self, terminate_grace: float = TERMINATE_GRACE_SECONDS):
        self.terminate_grace = terminate_grace
        self.logger = logging.getLogger('DouyinMonitor.Webhook.Command')

    @staticmethod
    def build_command_line(config: CommandActionConfig) -> str:
        """命令原样保留，参数逐个进行 shell 转义"""
        if not config.args:
            return config.command
        if os.name == 'nt':
            quoted = subprocess.list2cmdline(config.args)
        else:
            quoted = ' '.join(shlex.quote(arg) for arg in config.args)
        return f"{config.command} {quoted}"

    async def execute(self, config: CommandActionConfig,
                      context: Mapping[str, Any]) -> CommandActionResult:
        """替换变量后执行一次命令，退出码 0 视为成功"""
        start_time = time.monotonic()
        rendered = render_action_config(config, context)
        command_line = self.build_command_line(rendered)
        self.logger.debug(f"💻 执行命令: {command_line}")

        try:
            process = await asyncio.create_subprocess_shell(
                command_line,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=(os.name != 'nt'),
            )
        except OSError as e:
            return CommandActionResult(success=False, error=f"命令启动失败: {str(e)}",
                                       duration_ms=_elapsed_ms(start_time))

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=rendered.timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            await self._terminate(process)
            return CommandActionResult(
                success=False,
                exit_code=process.returncode,
                error=f"命令执行超时 ({rendered.timeout_ms}ms)",
                duration_ms=_elapsed_ms(start_time),
                timed_out=True,
            )

        result = CommandActionResult(
            success=process.returncode == 0,
            exit_code=process.returncode,
            stdout=stdout.decode('utf-8', errors='replace'),
            stderr=stderr.decode('utf-8', errors='replace'),
            duration_ms=_elapsed_ms(start_time),
        )
        if not result.success:
            detail = result.stderr.strip()[:RESPONSE_PREVIEW_LIMIT]
            result.error = f"命令退出码 {result.exit_code}" + (f": {detail}" if detail else "")
        return result

    async def _terminate(self, process: asyncio.subprocess.Process):
        """先发送 SIGTERM，超过宽限期仍未退出则强制结束"""
        self._send_signal(process, signal.SIGTERM)
        deadline = time.monotonic() + self.terminate_grace
        while self._is_alive(process):
            if time.monotonic() >= deadline:
                self.logger.warning(f"⚠️ 进程 {process.pid} 未响应终止信号，强制结束")
                self._send_signal(process, getattr(signal, 'SIGKILL', signal.SIGTERM))
                break
            await asyncio.sleep(TERMINATE_POLL_SECONDS)
        await process.wait()

    @staticmethod
    def _is_alive(process: asyncio.subprocess.Process) -> bool:
        """shell 已退出时，进程组中仍可能有忽略 SIGTERM 的子进程"""
        if process.returncode is None:
            return True
        if os.name == 'nt':
            return False
        try:
            os.killpg(process.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def _send_signal(self, process: asyncio.subprocess.Process, sig: int):
        try:
            if os.name != 'nt':
                # 进程组包含 shell 启动的子进程
                os.killpg(process.pid, sig)
            elif sig == signal.SIGTERM:
                process.terminate()
            else:
                process.kill()
        except ProcessLookupError:
            pass


def _set_default_header(headers: Dict[str, str], name: str, value: str):
    if not any(key.lower() == name.lower() for key in headers):
        headers[name] = value


def _parse_response(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return text


async def _read_file(path: str) -> Tuple[str, bytes]:
    try:
        async with aiofiles.open(path, 'rb') as f:
            content = await f.read()
    except OSError as e:
        raise _BodyError(f"无法读取文件 {path}: {str(e)}") from e
    return os.path.basename(path), content


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)


__all__ = [
    "HttpActionResult",
    "CommandActionResult",
    "HttpWebhookExecutor",
    "CommandWebhookExecutor",
]
