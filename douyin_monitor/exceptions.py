"""
统一异常处理模块

定义项目中使用的各种异常类型，支持更精细的错误处理和分类。
解析、下载、Webhook 的错误都会在操作边界被捕获并转换为日志记录，
不会终止进程。
"""

from typing import Optional, Any, Dict


class DouyinMonitorError(Exception):
    """项目基础异常类"""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.details = details
        self.error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式，便于日志记录"""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "details": self.details,
            "error_code": self.error_code,
        }


class ConfigError(DouyinMonitorError):
    """配置相关异常"""

    def __init__(self, message: str, config_path: Optional[str] = None):
        super().__init__(message, details={"path": config_path})
        self.config_path = config_path
        self.error_code = "CONFIG_ERROR"


class ClipboardError(DouyinMonitorError):
    """剪贴板访问异常"""

    def __init__(self, message: str, clipboard_type: Optional[str] = None):
        super().__init__(message, details={"clipboard_type": clipboard_type})
        self.clipboard_type = clipboard_type
        self.error_code = "CLIPBOARD_ERROR"


class ClipboardReadError(ClipboardError):
    """剪贴板读取异常"""

    def __init__(self, message: str):
        super().__init__(message, clipboard_type="read")
        self.error_code = "CLIPBOARD_READ_ERROR"


class NetworkError(DouyinMonitorError):
    """网络通信异常"""

    def __init__(self, message: str, url: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, details={"url": url, "status_code": status_code})
        self.url = url
        self.status_code = status_code
        self.error_code = "NETWORK_ERROR"


class ResolutionError(DouyinMonitorError):
    """短链解析异常（网络失败、非2xx、响应格式错误、接口返回错误）"""

    def __init__(self, message: str, link: Optional[str] = None,
                 status_code: Optional[int] = None, api_code: Optional[int] = None):
        super().__init__(message, details={
            "link": link,
            "status_code": status_code,
            "api_code": api_code,
        })
        self.link = link
        self.status_code = status_code
        self.api_code = api_code
        self.error_code = "RESOLUTION_ERROR"


class DownloadError(NetworkError):
    """视频下载异常（网络失败、非2xx、文件写入失败）"""

    def __init__(self, message: str, url: Optional[str] = None,
                 status_code: Optional[int] = None, file_path: Optional[str] = None):
        super().__init__(message, url=url, status_code=status_code)
        self.details["file_path"] = file_path
        self.file_path = file_path
        self.error_code = "DOWNLOAD_ERROR"


class WebhookError(DouyinMonitorError):
    """Webhook 相关异常基类"""

    def __init__(self, message: str, webhook_id: Optional[str] = None,
                 details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.webhook_id = webhook_id
        self.error_code = "WEBHOOK_ERROR"


class WebhookConfigError(WebhookError):
    """Webhook 配置异常（未知ID、类型与动作不匹配等）"""

    def __init__(self, message: str, webhook_id: Optional[str] = None):
        super().__init__(message, webhook_id=webhook_id)
        self.error_code = "WEBHOOK_CONFIG_ERROR"


class WebhookActionError(WebhookError):
    """Webhook 单次执行失败，可按定义的重试策略重试"""

    def __init__(self, message: str, webhook_id: Optional[str] = None,
                 status_code: Optional[int] = None, response_body: Optional[str] = None,
                 exit_code: Optional[int] = None):
        super().__init__(message, webhook_id=webhook_id, details={
            "status_code": status_code,
            "response_body": response_body,
            "exit_code": exit_code,
        })
        self.status_code = status_code
        self.response_body = response_body
        self.exit_code = exit_code
        self.error_code = "WEBHOOK_ACTION_ERROR"


class WebhookTimeoutError(WebhookActionError):
    """命令 Webhook 执行超时"""

    def __init__(self, message: str, timeout_ms: int, webhook_id: Optional[str] = None):
        super().__init__(message, webhook_id=webhook_id)
        self.timeout_ms = timeout_ms
        self.error_code = "WEBHOOK_TIMEOUT"


__all__ = [
    "DouyinMonitorError",
    "ConfigError",
    "ClipboardError",
    "ClipboardReadError",
    "NetworkError",
    "ResolutionError",
    "DownloadError",
    "WebhookError",
    "WebhookConfigError",
    "WebhookActionError",
    "WebhookTimeoutError",
]
