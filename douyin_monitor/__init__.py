"""
抖音剪贴板监控工具

监听剪贴板中的抖音分享短链，自动解析视频地址、下载并通过 Webhook 通知外部系统。
"""

# 导入版本信息
from .__version__ import (
    __version__,
    __version_info__,
    PROJECT_NAME,
    PROJECT_DESCRIPTION,
    AUTHOR,
    get_version_string,
)
from .clipboard_monitor import ClipboardMonitor
from .config import AppSettings, NamingRule, SettingsManager
from .exceptions import (
    DouyinMonitorError,
    ConfigError,
    ResolutionError,
    DownloadError,
    WebhookError,
)
from .webhook_engine import WebhookDispatchEngine
from .webhook_models import WebhookDefinition, WebhookTrigger
from .webhook_store import WebhookStore

__author__ = AUTHOR
__all__ = [
    # 版本信息
    "__version__",
    "__version_info__",
    "PROJECT_NAME",
    "PROJECT_DESCRIPTION",
    "get_version_string",
    # 核心类
    "AppSettings",
    "NamingRule",
    "SettingsManager",
    "ClipboardMonitor",
    "WebhookDefinition",
    "WebhookTrigger",
    "WebhookDispatchEngine",
    "WebhookStore",
    # 异常类
    "DouyinMonitorError",
    "ConfigError",
    "ResolutionError",
    "DownloadError",
    "WebhookError",
]
