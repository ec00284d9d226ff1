"""主程序模块

支持：
- CLI界面
- 优雅关闭
- 信号处理
- 状态监控
- 设置热加载
"""

import asyncio
import json
import logging
import signal
import sys
from typing import Optional

import aiohttp
import click

from .__version__ import get_version_string
from .clipboard_monitor import ClipboardMonitor
from .config import AppSettings, SettingsManager
from .exceptions import ConfigError
from .logging_config import setup_logging
from .webhook_engine import WebhookDispatchEngine
from .webhook_store import WebhookStore

STATUS_REPORT_INTERVAL = 300


class DouyinMonitorApp:
    """主应用程序类"""

    def __init__(self, settings_path: Optional[str] = None,
                 webhooks_path: Optional[str] = None,
                 log_level: Optional[str] = None):
        self.settings_manager = SettingsManager(settings_path)
        self.webhook_store = WebhookStore(webhooks_path)
        self.log_level = log_level
        self.settings: Optional[AppSettings] = None
        self.session: Optional[aiohttp.ClientSession] = None
        self.clipboard_monitor: Optional[ClipboardMonitor] = None
        self.logger: Optional[logging.Logger] = None
        self.shutdown_event: Optional[asyncio.Event] = None

    async def initialize(self):
        """初始化应用程序"""
        self.settings = self.settings_manager.load()

        self.logger = setup_logging(
            level=self.log_level or self.settings.log_level,
            log_file=self.settings.log_file
        )

        # 解析、下载与 HTTP Webhook 共用一个会话
        self.session = aiohttp.ClientSession()
        self.clipboard_monitor = ClipboardMonitor(
            self.settings,
            webhook_store=self.webhook_store,
            session=self.session,
        )
        self.clipboard_monitor.webhook_engine.load_webhooks()

        self.settings_manager.register_reload_callback(self._on_settings_reload)
        if self.settings.hot_reload:
            self.settings_manager.start_file_watcher()

        self.logger.info("应用程序初始化完成")

    async def start(self):
        """启动应用程序"""
        # 事件需绑定到运行中的事件循环
        self.shutdown_event = asyncio.Event()
        try:
            await self.initialize()

            self.logger.info("=" * 60)
            self.logger.info(f"抖音剪贴板监控工具启动 v{get_version_string()}")
            self.logger.info(f"设置文件: {self.settings_manager.settings_path}")
            self.logger.info(f"Webhook配置: {self.webhook_store.path}")
            self.logger.info(f"监控间隔: {self.settings.monitor_interval_ms}毫秒")
            self.logger.info("=" * 60)

            self._setup_signal_handlers()

            await self.clipboard_monitor.start()
            status_task = asyncio.create_task(self._status_reporter())

            await self.shutdown_event.wait()
            self.logger.info("收到关闭信号，正在优雅关闭...")

            await self.clipboard_monitor.stop()
            status_task.cancel()
            try:
                await status_task
            except asyncio.CancelledError:
                pass

            self.logger.info("应用程序已安全关闭")

        except ConfigError as e:
            if self.logger:
                self.logger.error(f"配置错误: {str(e)}")
            else:
                print(f"配置错误: {str(e)}")
            sys.exit(1)

        finally:
            await self.cleanup()

    async def cleanup(self):
        """清理所有资源"""
        if self.logger:
            self.logger.info("开始清理应用程序资源...")

        self.settings_manager.cleanup()

        if self.clipboard_monitor is not None:
            await self.clipboard_monitor.close()

        if self.session is not None and not self.session.closed:
            await self.session.close()

        if self.logger:
            self.logger.info("应用程序资源清理完成")

    def _setup_signal_handlers(self):
        """设置信号处理器"""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"收到信号 {signum}")
            self.shutdown_event.set()

        for sig_name in ('SIGINT', 'SIGTERM', 'SIGHUP'):
            sig = getattr(signal, sig_name, None)
            if sig is None:
                continue
            try:
                loop.add_signal_handler(sig, signal_handler, sig)
            except NotImplementedError:
                # Windows 事件循环不支持 add_signal_handler
                signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(
                    self.shutdown_event.set))

    async def _status_reporter(self):
        """状态报告器"""
        try:
            while not self.shutdown_event.is_set():
                await asyncio.sleep(STATUS_REPORT_INTERVAL)

                status = self.clipboard_monitor.get_status()
                self.logger.info(
                    f"状态报告 - "
                    f"链接: {sum(status['links'].values())}, "
                    f"已解析: {status['links']['resolved']}, "
                    f"失败: {status['links']['failed']}, "
                    f"已下载: {status['downloads_completed']}"
                )
        except asyncio.CancelledError:
            pass

    async def _on_settings_reload(self, old_settings: AppSettings, new_settings: AppSettings):
        """设置重载回调"""
        self.logger.info("检测到设置变更")
        self.settings = new_settings

        if old_settings.log_level != new_settings.log_level and not self.log_level:
            self.logger.setLevel(getattr(logging, new_settings.log_level.upper(), logging.INFO))
            self.logger.info(f"日志级别已更新为: {new_settings.log_level}")

        if self.clipboard_monitor is not None:
            await self.clipboard_monitor.on_settings_reloaded(old_settings, new_settings)


# CLI命令
@click.group()
@click.version_option(version=get_version_string())
def cli():
    """抖音剪贴板监控工具"""
    pass


settings_option = click.option('--settings', '-s', type=click.Path(dir_okay=False),
                               help='设置文件路径')
webhooks_option = click.option('--webhooks', '-w', type=click.Path(dir_okay=False),
                               help='Webhook配置文件路径')


@cli.command()
@settings_option
@webhooks_option
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              default=None, help='日志级别')
def start(settings: Optional[str], webhooks: Optional[str], log_level: Optional[str]):
    """启动监控服务"""
    app = DouyinMonitorApp(settings, webhooks, log_level)

    try:
        asyncio.run(app.start())
    except KeyboardInterrupt:
        print("\n监控已停止")


@cli.command()
@settings_option
def show_settings(settings: Optional[str]):
    """显示当前生效的设置"""
    manager = SettingsManager(settings)
    try:
        app_settings = manager.load()
    except ConfigError as e:
        click.echo(f"❌ 读取设置失败: {str(e)}", err=True)
        sys.exit(1)

    click.echo(f"设置文件: {manager.settings_path}")
    click.echo(json.dumps(app_settings.to_store_dict(), indent=2, ensure_ascii=False))


@cli.command()
@settings_option
def validate_config(settings: Optional[str]):
    """验证设置文件"""
    manager = SettingsManager(settings)

    try:
        app_settings = manager.load()
        click.echo(f"✅ 设置文件验证通过: {manager.settings_path}")
        click.echo(f"   - 自动下载: {'是' if app_settings.auto_download else '否'}")
        click.echo(f"   - 下载目录: {app_settings.download_path or '未设置'}")
        click.echo(f"   - 命名规则: {app_settings.naming_rule.value}")
        click.echo(f"   - 解析接口: {app_settings.resolve_api_url}")

    except ConfigError as e:
        click.echo(f"❌ 设置文件验证失败: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
@settings_option
def create_config(settings: Optional[str]):
    """创建默认设置文件"""
    manager = SettingsManager(settings)

    if manager.settings_path.exists():
        if not click.confirm(f"设置文件 {manager.settings_path} 已存在，是否覆盖？"):
            return

    try:
        path = manager.create_default()
        click.echo(f"✅ 默认设置文件已创建: {path}")
        click.echo("请编辑设置文件并设置：")
        click.echo("   - downloadPath 下载目录")
        click.echo("   - autoDownload 是否自动下载")
        click.echo("   - namingRule 文件命名规则")

    except ConfigError as e:
        click.echo(f"❌ 创建设置文件失败: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
@webhooks_option
def list_webhooks(webhooks: Optional[str]):
    """列出已配置的Webhook"""
    store = WebhookStore(webhooks)
    try:
        definitions = store.load()
    except ConfigError as e:
        click.echo(f"❌ 读取Webhook配置失败: {str(e)}", err=True)
        sys.exit(1)

    if not definitions:
        click.echo(f"暂无Webhook配置 ({store.path})")
        return

    for webhook in definitions:
        state = "✅" if webhook.enabled else "⏸️"
        retry = f"重试{webhook.retry.max_attempts}次" if webhook.retry.enabled else "不重试"
        click.echo(f"{state} {webhook.id}  {webhook.name}  "
                   f"[{webhook.kind.value}] {webhook.trigger.value}  {retry}")


@cli.command()
@webhooks_option
@click.argument('webhook_id')
def test_webhook(webhooks: Optional[str], webhook_id: str):
    """使用测试数据执行一次Webhook"""
    async def run_test():
        engine = WebhookDispatchEngine(store=WebhookStore(webhooks))
        try:
            engine.load_webhooks()
            webhook = engine.get_webhook(webhook_id)
            if webhook is None:
                click.echo(f"❌ 未找到Webhook: {webhook_id}", err=True)
                return False

            click.echo(f"正在测试Webhook: {webhook.name} ...")
            result = await engine.test_webhook(webhook)
            if result.success:
                click.echo(f"✅ 测试成功 ({result.outcome.duration_ms}ms)")
            else:
                click.echo(f"❌ 测试失败: {result.error}", err=True)
            return result.success
        finally:
            await engine.close()

    if not asyncio.run(run_test()):
        sys.exit(1)


if __name__ == "__main__":
    cli()
