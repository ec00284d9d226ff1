"""
剪贴板处理相关数据模型
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


def _new_id() -> str:
    return uuid.uuid4().hex


class LinkStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class LogKind(str, Enum):
    RESOLVED = "resolved"
    FAILED = "failed"
    DOWNLOADED = "downloaded"
    WEBHOOK = "webhook"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class ClipboardSnapshot:
    content: str
    observed_at: datetime = field(default_factory=datetime.now)


@dataclass
class LinkRecord:
    link: str
    original_content: str
    observed_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=_new_id)
    status: LinkStatus = LinkStatus.PENDING
    media_url: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'link': self.link,
            'original_content': self.original_content,
            'observed_at': self.observed_at.isoformat(),
            'status': self.status.value,
            'media_url': self.media_url,
            'title': self.title,
            'author': self.author,
            'error': self.error,
        }


@dataclass
class WebhookOutcome:
    webhook_id: str
    webhook_name: str
    trigger: str
    status: OutcomeStatus
    duration_ms: int
    attempt: int
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'webhook_id': self.webhook_id,
            'webhook_name': self.webhook_name,
            'trigger': self.trigger,
            'status': self.status.value,
            'duration_ms': self.duration_ms,
            'attempt': self.attempt,
            'error': self.error,
        }


@dataclass
class LogEntry:
    kind: LogKind
    original_text: str
    source_link: str
    media_url: Optional[str] = None
    error: Optional[str] = None
    download_path: Optional[str] = None
    webhook_outcome: Optional[WebhookOutcome] = None
    occurred_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'kind': self.kind.value,
            'occurred_at': self.occurred_at.isoformat(),
            'original_text': self.original_text,
            'source_link': self.source_link,
            'media_url': self.media_url,
            'error': self.error,
            'download_path': self.download_path,
            'webhook_outcome': self.webhook_outcome.to_dict() if self.webhook_outcome else None,
        }
