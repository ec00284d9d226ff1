"""
Webhook 配置数据模型

持久化格式与历史版本的 webhooks.json 保持一致：
{id, name, enabled, type, trigger, config, retry: {enabled, maxAttempts, delay}, createdAt}
"""

import random
import string
import time
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .templating import substitute_object

DEFAULT_WEBHOOK_NAME = "未命名Hook"


class WebhookTrigger(str, Enum):
    """触发事件"""
    DOWNLOAD_COMPLETE = "download_complete"
    RESOLVE_SUCCESS = "resolve_success"
    RESOLVE_FAILED = "resolve_failed"


class WebhookKind(str, Enum):
    """动作类型"""
    HTTP = "http"
    COMMAND = "command"


class MultipartField(BaseModel):
    name: str
    type: Literal['text', 'file'] = 'text'
    value: str = ""


class MultipartBody(BaseModel):
    type: Literal['multipart'] = 'multipart'
    fields: List[MultipartField] = Field(default_factory=list)


class JsonBody(BaseModel):
    type: Literal['json'] = 'json'
    data: Any = None


class FormField(BaseModel):
    name: str
    value: str = ""


class FormBody(BaseModel):
    type: Literal['form'] = 'form'
    fields: List[FormField] = Field(default_factory=list)


class RawBody(BaseModel):
    type: Literal['raw'] = 'raw'
    data: str = ""


BodyConfig = Annotated[
    Union[MultipartBody, JsonBody, FormBody, RawBody],
    Field(discriminator='type')
]


class HttpActionConfig(BaseModel):
    """HTTP 请求动作"""
    url: str
    method: str = "POST"
    headers: Optional[Dict[str, str]] = None
    body: Optional[BodyConfig] = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('URL不能为空')
        return v.strip()

    @field_validator('method')
    @classmethod
    def validate_method(cls, v: str) -> str:
        method = (v or "POST").strip().upper()
        if method not in ('GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS'):
            raise ValueError(f'不支持的HTTP方法: {v}')
        return method


class CommandActionConfig(BaseModel):
    """本地命令动作"""
    command: str
    args: List[str] = Field(default_factory=list)
    timeout_ms: int = Field(default=30000, alias='timeout')

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('command')
    @classmethod
    def validate_command(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('命令不能为空')
        return v

    @field_validator('timeout_ms')
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError('命令超时时间必须大于0')
        return v


class RetryConfig(BaseModel):
    """重试策略"""
    enabled: bool = False
    max_attempts: int = Field(default=3, alias='maxAttempts', ge=1)
    delay_ms: int = Field(default=1000, alias='delay', ge=0)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def attempts(self) -> int:
        return self.max_attempts if self.enabled else 1


ActionConfig = Union[HttpActionConfig, CommandActionConfig]


def render_action_config(action: ActionConfig, context: Mapping[str, Any]) -> ActionConfig:
    """替换动作配置中的所有模板变量，返回新的动作配置"""
    raw = action.model_dump(mode='json', by_alias=True)
    return type(action).model_validate(substitute_object(raw, context))


def generate_webhook_id() -> str:
    """生成 webhook-<毫秒时间戳>-<9位随机串> 形式的ID"""
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"webhook-{int(time.time() * 1000)}-{suffix}"


class WebhookDefinition(BaseModel):
    """一条 Webhook 定义"""
    id: str = Field(default_factory=generate_webhook_id)
    name: str = DEFAULT_WEBHOOK_NAME
    enabled: bool = True
    kind: WebhookKind = Field(default=WebhookKind.HTTP, alias='type')
    trigger: WebhookTrigger = WebhookTrigger.DOWNLOAD_COMPLETE
    action: ActionConfig = Field(alias='config')
    retry: RetryConfig = Field(default_factory=RetryConfig)
    created_at: int = Field(default_factory=lambda: int(time.time() * 1000), alias='createdAt')

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode='before')
    @classmethod
    def parse_action_by_kind(cls, data: Any) -> Any:
        """按 type 字段选择动作模型"""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        kind = data.get('type', data.get('kind', WebhookKind.HTTP))
        key = 'config' if 'config' in data else 'action'
        action = data.get(key)
        if isinstance(action, Mapping):
            if WebhookKind(kind) == WebhookKind.COMMAND:
                data[key] = CommandActionConfig.model_validate(action)
            else:
                data[key] = HttpActionConfig.model_validate(action)
        return data

    @model_validator(mode='after')
    def check_action_matches_kind(self) -> "WebhookDefinition":
        expected = CommandActionConfig if self.kind == WebhookKind.COMMAND else HttpActionConfig
        if not isinstance(self.action, expected):
            raise ValueError(f'Webhook类型 {self.kind.value} 与动作配置不匹配')
        return self

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return v.strip() or DEFAULT_WEBHOOK_NAME

    def to_store_dict(self) -> Dict[str, Any]:
        """转换为持久化格式"""
        return self.model_dump(mode='json', by_alias=True)


__all__ = [
    "DEFAULT_WEBHOOK_NAME",
    "WebhookTrigger",
    "WebhookKind",
    "MultipartField",
    "MultipartBody",
    "JsonBody",
    "FormField",
    "FormBody",
    "RawBody",
    "BodyConfig",
    "HttpActionConfig",
    "CommandActionConfig",
    "RetryConfig",
    "ActionConfig",
    "WebhookDefinition",
    "generate_webhook_id",
    "render_action_config",
]
