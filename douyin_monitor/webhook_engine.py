"""
Webhook 调度引擎

负责：
- 管理 Webhook 定义（增删改查、启用/禁用、加载/保存）
- 按触发事件匹配启用的定义并并发执行
- 按定义的重试策略重试，每次最终结果记录一条 webhook 日志
- 同一定义同一时间只允许一个执行，正在执行时新的触发直接跳过
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union

import aiohttp
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .clipboard_models import LogEntry, LogKind, OutcomeStatus, WebhookOutcome
from .exceptions import ConfigError, WebhookActionError, WebhookConfigError, WebhookTimeoutError
from .utils import now_ms
from .webhook_actions import CommandWebhookExecutor, HttpWebhookExecutor
from .webhook_models import WebhookDefinition, WebhookKind, WebhookTrigger
from .webhook_store import WebhookStore


def build_test_context() -> Dict[str, Any]:
    """测试 Webhook 时使用的固定上下文"""
    return {
        'filePath': '/test/path/video.mp4',
        'fileName': 'video.mp4',
        'originalText': '测试视频内容',
        'shareLink': 'https://v.douyin.com/test',
        'timestamp': now_ms(),
        'dateTime': datetime.now().isoformat(),
    }


@dataclass
class WebhookTestResult:
    success: bool
    error: Optional[str] = None
    outcome: Optional[WebhookOutcome] = None


class WebhookDispatchEngine:
    """Webhook 定义管理与执行"""

    def __init__(self, store: Optional[WebhookStore] = None,
                 log_sink: Optional[Callable[[LogEntry], Any]] = None,
                 http_executor: Optional[HttpWebhookExecutor] = None,
                 command_executor: Optional[CommandWebhookExecutor] = None,
                 session: Optional[aiohttp.ClientSession] = None,
                 timeout: Optional[float] = 60.0):
        self.logger = logging.getLogger('DouyinMonitor.WebhookEngine')
        self.store = store
        self.log_sink = log_sink
        self.http_executor = http_executor or HttpWebhookExecutor(session, timeout)
        self.command_executor = command_executor or CommandWebhookExecutor()
        self.webhooks: List[WebhookDefinition] = []
        self._executing: Set[str] = set()

    # ---- 定义管理 ----

    def load_webhooks(self) -> List[WebhookDefinition]:
        """从存储加载定义，替换内存中的列表"""
        if self.store is None:
            return self.webhooks
        try:
            self.webhooks = self.store.load()
        except ConfigError as e:
            self.logger.error(f"❌ 加载Webhook配置失败: {str(e)}")
            self.webhooks = []
        return self.webhooks

    def save_webhooks(self) -> bool:
        """保存当前内存中的全部定义"""
        if self.store is None:
            return False
        try:
            self.store.save(self.webhooks)
            return True
        except ConfigError as e:
            self.logger.error(f"❌ 保存Webhook配置失败: {str(e)}")
            return False

    def add_webhook(self, webhook: Union[WebhookDefinition, Mapping[str, Any]]) -> WebhookDefinition:
        """新增定义，未给出的字段使用默认值并生成新ID"""
        if not isinstance(webhook, WebhookDefinition):
            data = {k: v for k, v in webhook.items() if k not in ('id', 'createdAt', 'created_at')}
            try:
                webhook = WebhookDefinition.model_validate(data)
            except ValidationError as e:
                raise WebhookConfigError(f"Webhook配置无效: {str(e)}") from e
        self.webhooks.append(webhook)
        self.logger.info(f"➕ 新增Webhook: {webhook.name} ({webhook.id})")
        return webhook

    def update_webhook(self, webhook_id: str, updates: Mapping[str, Any]) -> Optional[WebhookDefinition]:
        """按持久化键名合并更新，未知ID返回 None"""
        for index, existing in enumerate(self.webhooks):
            if existing.id != webhook_id:
                continue
            merged = {**existing.to_store_dict(), **updates, 'id': webhook_id}
            try:
                updated = WebhookDefinition.model_validate(merged)
            except ValidationError as e:
                raise WebhookConfigError(f"Webhook配置无效: {str(e)}", webhook_id) from e
            self.webhooks[index] = updated
            return updated
        return None

    def remove_webhook(self, webhook_id: str) -> Optional[WebhookDefinition]:
        for index, existing in enumerate(self.webhooks):
            if existing.id == webhook_id:
                return self.webhooks.pop(index)
        return None

    def toggle_webhook(self, webhook_id: str, enabled: Optional[bool] = None) -> Optional[WebhookDefinition]:
        """切换启用状态；给出 enabled 时直接设置"""
        webhook = self.get_webhook(webhook_id)
        if webhook is None:
            return None
        new_state = (not webhook.enabled) if enabled is None else enabled
        return self.update_webhook(webhook_id, {'enabled': new_state})

    def get_webhook(self, webhook_id: str) -> Optional[WebhookDefinition]:
        for webhook in self.webhooks:
            if webhook.id == webhook_id:
                return webhook
        return None

    def is_executing(self, webhook_id: str) -> bool:
        return webhook_id in self._executing

    # ---- 执行 ----

    async def execute_trigger(self, trigger: Union[WebhookTrigger, str],
                              context: Mapping[str, Any]) -> List[WebhookOutcome]:
        """并发执行所有匹配的启用定义，等待全部结束，不向调用方抛出单个失败"""
        trigger = WebhookTrigger(trigger)
        active = [w for w in self.webhooks if w.enabled and w.trigger == trigger]
        if not active:
            self.logger.debug(f"📡 没有启用的{trigger.value}类型webhook")
            return []

        self.logger.info(f"📡 执行{len(active)}个{trigger.value}类型webhook")
        results = await asyncio.gather(
            *(self.execute_one(webhook, context) for webhook in active),
            return_exceptions=True
        )

        outcomes = []
        for webhook, result in zip(active, results):
            if isinstance(result, BaseException):
                self.logger.error(f"❌ Webhook {webhook.name} 执行异常: {result!r}")
            elif result is not None:
                outcomes.append(result)
        return outcomes

    async def execute_one(self, webhook: WebhookDefinition,
                          context: Mapping[str, Any]) -> Optional[WebhookOutcome]:
        """执行单个定义；该定义正在执行时跳过并返回 None"""
        if webhook.id in self._executing:
            self.logger.info(f"⏳ Webhook {webhook.name} 正在执行中，跳过")
            return None

        self._executing.add(webhook.id)
        try:
            return await self._run(webhook, context, webhook.retry.attempts, webhook.retry.delay_ms)
        finally:
            self._executing.discard(webhook.id)

    async def test_webhook(self, webhook: WebhookDefinition) -> WebhookTestResult:
        """使用固定测试上下文执行一次，不重试，不占用正式执行的并发名额"""
        self.logger.info(f"🧪 测试Webhook: {webhook.name}")
        outcome = await self._run(webhook, build_test_context(), attempts=1, delay_ms=0)
        return WebhookTestResult(success=outcome.succeeded, error=outcome.error, outcome=outcome)

    async def _run(self, webhook: WebhookDefinition, context: Mapping[str, Any],
                   attempts: int, delay_ms: int) -> WebhookOutcome:
        start_time = time.monotonic()
        attempt = 0
        error: Optional[str] = None

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(delay_ms / 1000),
            retry=retry_if_exception_type(WebhookActionError),
            before_sleep=before_sleep_log(self.logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt_state in retrying:
                with attempt_state:
                    attempt = attempt_state.retry_state.attempt_number
                    self.logger.info(f"📡 执行Webhook: {webhook.name} (第{attempt}次尝试)")
                    await self._perform(webhook, context)
            status = OutcomeStatus.SUCCESS
        except WebhookActionError as e:
            status = OutcomeStatus.FAILURE
            error = str(e)

        outcome = WebhookOutcome(
            webhook_id=webhook.id,
            webhook_name=webhook.name,
            trigger=webhook.trigger.value,
            status=status,
            duration_ms=int((time.monotonic() - start_time) * 1000),
            attempt=attempt,
            error=error,
        )
        if outcome.succeeded:
            self.logger.info(f"✅ Webhook {webhook.name} 执行成功 ({outcome.duration_ms}ms)")
        else:
            self.logger.error(f"❌ Webhook {webhook.name} 执行失败，已尝试{attempt}次: {error}")
        self._log_outcome(outcome)
        return outcome

    async def _perform(self, webhook: WebhookDefinition, context: Mapping[str, Any]):
        """执行一次动作，失败时抛出 WebhookActionError"""
        try:
            if webhook.kind == WebhookKind.HTTP:
                result = await self.http_executor.execute(webhook.action, context)
            else:
                result = await self.command_executor.execute(webhook.action, context)
        except Exception as e:
            raise WebhookActionError(f"Webhook执行异常: {str(e)}", webhook.id) from e

        if result.success:
            return

        if webhook.kind == WebhookKind.HTTP:
            self.logger.warning(f"❌ Webhook {webhook.name} 请求失败: {result.error}")
            raise WebhookActionError(
                f"HTTP Webhook执行失败: {result.error}",
                webhook.id,
                status_code=result.status,
            )
        self.logger.warning(f"❌ Webhook {webhook.name} 命令失败: {result.error}")
        if getattr(result, 'timed_out', False):
            raise WebhookTimeoutError(
                f"命令Webhook执行失败: {result.error}",
                webhook.action.timeout_ms,
                webhook.id,
            )
        raise WebhookActionError(
            f"命令Webhook执行失败: {result.error}",
            webhook.id,
            exit_code=result.exit_code,
        )

    def _log_outcome(self, outcome: WebhookOutcome):
        if self.log_sink is None:
            return
        self.log_sink(LogEntry(
            kind=LogKind.WEBHOOK,
            original_text=f"Webhook: {outcome.webhook_name}",
            source_link=outcome.trigger,
            error=outcome.error,
            webhook_outcome=outcome,
        ))

    async def close(self):
        await self.http_executor.close()


__all__ = [
    "WebhookTestResult",
    "WebhookDispatchEngine",
    "build_test_context",
]
