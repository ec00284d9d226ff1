"""
配置管理模块

支持：
- JSON 设置文件（用户目录）
- 环境变量覆盖
- 配置热加载
- 配置验证
"""

import asyncio
import inspect
import json
import logging
import os
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .exceptions import ConfigError
from .link_extractor import DEFAULT_SHORT_LINK_DOMAIN

DEFAULT_RESOLVE_API_URL = "https://api.xhus.cn/api/douyin"
USER_DATA_ENV = "DOUYIN_MONITOR_HOME"


class NamingRule(str, Enum):
    """下载文件命名规则"""
    TIMESTAMP = "timestamp"
    TITLE = "title"
    HASH = "hash"
    SEQUENTIAL = "sequential"
    IDENTIFIER = "identifier"


class AppSettings(BaseModel):
    """应用设置数据模型（持久化时使用驼峰键名）"""
    auto_download: bool = Field(default=False, alias='autoDownload')
    download_path: str = Field(default="", alias='downloadPath')
    naming_rule: NamingRule = Field(default=NamingRule.TIMESTAMP, alias='namingRule')
    monitor_interval_ms: int = Field(default=500, alias='monitorInterval')
    max_logs: int = Field(default=100, alias='maxLogs')
    max_history: int = Field(default=50, alias='maxHistory')
    # 解析与下载
    platform_domain: str = Field(default=DEFAULT_SHORT_LINK_DOMAIN, alias='platformDomain')
    resolve_api_url: str = Field(default=DEFAULT_RESOLVE_API_URL, alias='resolveApiUrl')
    download_delay_ms: int = Field(default=1000, alias='downloadDelay')
    request_timeout: Optional[float] = Field(default=60.0, alias='requestTimeout')
    # 日志与控制台
    log_level: str = Field(default="INFO", alias='logLevel')
    log_file: Optional[str] = Field(default=None, alias='logFile')
    console_colored: bool = Field(default=True, alias='consoleColored')
    console_enabled: bool = Field(default=True, alias='consoleEnabled')
    hot_reload: bool = Field(default=True, alias='hotReload')

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('naming_rule', mode='before')
    @classmethod
    def validate_naming_rule(cls, v: Any) -> Any:
        """未知或未设置的命名规则回退为时间戳"""
        if isinstance(v, NamingRule):
            return v
        try:
            return NamingRule(v)
        except ValueError:
            logging.getLogger('DouyinMonitor.Config').warning(
                f"未知的命名规则 {v!r}，使用 timestamp"
            )
            return NamingRule.TIMESTAMP

    @field_validator('monitor_interval_ms')
    @classmethod
    def validate_monitor_interval(cls, v: int) -> int:
        """验证监听间隔"""
        if v < 50 or v > 60000:
            raise ValueError('监听间隔必须在50-60000毫秒之间')
        return v

    @field_validator('max_logs', 'max_history')
    @classmethod
    def validate_capacity(cls, v: int) -> int:
        """验证历史容量"""
        if v < 1 or v > 10000:
            raise ValueError('记录数量必须在1-10000之间')
        return v

    @field_validator('download_delay_ms')
    @classmethod
    def validate_download_delay(cls, v: int) -> int:
        """验证下载延迟"""
        if v < 0 or v > 60000:
            raise ValueError('下载延迟必须在0-60000毫秒之间')
        return v

    @field_validator('request_timeout')
    @classmethod
    def validate_request_timeout(cls, v: Optional[float]) -> Optional[float]:
        """验证网络超时时间，None 表示使用底层默认值"""
        if v is not None and (v <= 0 or v > 3600):
            raise ValueError('网络超时时间必须在1-3600秒之间')
        return v

    @field_validator('resolve_api_url')
    @classmethod
    def validate_resolve_api_url(cls, v: str) -> str:
        """验证解析接口地址"""
        if not v or not v.strip():
            raise ValueError('解析接口地址不能为空')
        if not v.startswith(('http://', 'https://')):
            raise ValueError('解析接口地址必须以http://或https://开头')
        return v.strip()

    @field_validator('platform_domain')
    @classmethod
    def validate_platform_domain(cls, v: str) -> str:
        """验证短链域名"""
        if not v or not v.strip():
            raise ValueError('短链域名不能为空')
        return v.strip().rstrip('/')

    def to_store_dict(self) -> Dict[str, Any]:
        """转换为持久化格式"""
        return self.model_dump(mode='json', by_alias=True)


def get_user_data_dir() -> Path:
    """获取用户数据目录（可通过环境变量覆盖）"""
    override = os.getenv(USER_DATA_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / '.douyin_monitor'


class SettingsFileHandler(FileSystemEventHandler):
    """设置文件变化监控处理器"""

    def __init__(self, settings_manager: "SettingsManager", loop: asyncio.AbstractEventLoop):
        self.settings_manager = settings_manager
        self.loop = loop
        self.logger = logging.getLogger('DouyinMonitor.Config.FileHandler')

    def on_modified(self, event):
        if event.is_directory:
            return

        if Path(event.src_path) == self.settings_manager.settings_path:
            if self.settings_manager.is_self_write():
                return
            self.logger.info(f"设置文件已修改: {event.src_path}")
            # watchdog 回调运行在观察线程中，需要线程安全地调度协程
            asyncio.run_coroutine_threadsafe(
                self.settings_manager.reload_settings(),
                self.loop
            )


ReloadCallback = Callable[[AppSettings, AppSettings], Any]


class SettingsManager:
    """设置存储：加载、保存、热加载"""

    SELF_WRITE_GRACE = 1.0

    def __init__(self, settings_path: Optional[Union[str, Path]] = None):
        self.logger = logging.getLogger('DouyinMonitor.Config')

        if settings_path is None:
            self.settings_path = get_user_data_dir() / 'settings.json'
        else:
            self.settings_path = Path(settings_path)

        self.settings: Optional[AppSettings] = None
        self.observer: Optional[Observer] = None
        self._reload_callbacks: List[ReloadCallback] = []
        self._last_self_write = 0.0

    def load_raw(self) -> Optional[Dict[str, Any]]:
        """读取设置文件，不存在时返回 None"""
        if not self.settings_path.exists():
            return None
        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"设置文件格式错误: {str(e)}", str(self.settings_path)) from e
        if not isinstance(data, dict):
            raise ConfigError("设置文件内容必须是JSON对象", str(self.settings_path))
        return data

    def load(self) -> AppSettings:
        """加载设置；文件不存在时使用默认设置"""
        start_time = time.time()
        data = self.load_raw()
        if data is None:
            self.logger.info("📖 使用默认设置（未找到保存的设置文件）")
            data = {}

        data = self._apply_env_overrides(data)

        try:
            self.settings = AppSettings(**data)
        except ValidationError as e:
            raise ConfigError(f"设置验证失败: {str(e)}", str(self.settings_path)) from e

        load_time = time.time() - start_time
        self.logger.info(f"设置加载成功: {self.settings_path} (耗时: {load_time:.3f}s)")
        return self.settings

    def save(self, settings: AppSettings) -> Path:
        """整体替换保存设置（先写临时文件再替换）"""
        tmp_path = self.settings_path.with_suffix(self.settings_path.suffix + '.tmp')
        try:
            self.settings_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(settings.to_store_dict(), f, indent=2, ensure_ascii=False)
            self._last_self_write = time.monotonic()
            os.replace(tmp_path, self.settings_path)
        except OSError as e:
            raise ConfigError(f"保存设置失败: {str(e)}", str(self.settings_path)) from e

        self.settings = settings
        self.logger.info(f"💾 设置已保存到: {self.settings_path}")
        return self.settings_path

    def create_default(self) -> Path:
        """创建默认设置文件"""
        return self.save(AppSettings())

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """应用环境变量覆盖"""
        data = dict(data)
        download_path = os.getenv('DOUYIN_DOWNLOAD_PATH')
        if download_path:
            data['downloadPath'] = download_path
        auto_download = os.getenv('DOUYIN_AUTO_DOWNLOAD')
        if auto_download:
            data['autoDownload'] = auto_download.strip().lower() in ('1', 'true', 'yes', 'on')
        resolve_api = os.getenv('DOUYIN_RESOLVE_API')
        if resolve_api:
            data['resolveApiUrl'] = resolve_api
        return data

    def is_self_write(self) -> bool:
        """保存设置后短时间内的文件事件来自自身写入"""
        return time.monotonic() - self._last_self_write < self.SELF_WRITE_GRACE

    def start_file_watcher(self):
        """启动设置文件监控，需在事件循环中调用"""
        if self.observer is not None:
            return

        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        loop = asyncio.get_running_loop()
        self.observer = Observer()
        self.observer.schedule(
            SettingsFileHandler(self, loop),
            str(self.settings_path.parent),
            recursive=False
        )
        self.observer.start()
        self.logger.info("设置文件热加载监控已启动")

    def stop_file_watcher(self):
        """停止设置文件监控"""
        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None
            self.logger.info("设置文件监控已停止")

    async def reload_settings(self):
        """重新加载设置并通知回调"""
        old_settings = self.settings or AppSettings()
        try:
            new_settings = self.load()
        except ConfigError as e:
            self.logger.error(f"设置重载失败: {str(e)}")
            return

        for callback in self._reload_callbacks:
            try:
                result = callback(old_settings, new_settings)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.logger.error(f"设置重载回调执行失败: {str(e)}")

        self.logger.info("🔄 设置重载完成")

    def register_reload_callback(self, callback: ReloadCallback):
        """注册设置重载回调函数"""
        self._reload_callbacks.append(callback)

    def cleanup(self):
        """清理资源"""
        self.stop_file_watcher()
        self._reload_callbacks.clear()


__all__ = [
    "DEFAULT_RESOLVE_API_URL",
    "NamingRule",
    "AppSettings",
    "SettingsManager",
    "get_user_data_dir",
]
