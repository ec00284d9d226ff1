"""
剪贴板监控器集成测试：剪贴板 → 解析 → 下载 → Webhook → 日志
"""

import asyncio

import pytest

from douyin_monitor.clipboard_models import LinkStatus, LogKind
from douyin_monitor.clipboard_monitor import ClipboardMonitor
from douyin_monitor.webhook_store import WebhookStore

LINK_A = "https://v.platform.com/abc123/"
LINK_B = "https://v.platform.com/def456/"


@pytest.fixture
def monitor_factory(remote_services, http_session, clipboard_stub, make_settings, tmp_path):
    def factory(**overrides):
        overrides.setdefault('resolve_api_url', remote_services.url('/api/douyin'))
        monitor = ClipboardMonitor(
            make_settings(**overrides),
            webhook_store=WebhookStore(tmp_path / 'webhooks.json'),
            session=http_session,
            clipboard_reader=clipboard_stub,
        )
        return monitor

    return factory


async def wait_until(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("等待条件超时")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_resolves_link_from_shared_text(monitor_factory, remote_services):
    remote_services.resolve_responses[LINK_A] = (200, {'code': 200, 'data': {'url': 'https://cdn/x.mp4'}})
    monitor = monitor_factory()

    records = monitor.process_clipboard_change(f"check this out {LINK_A} cool")
    await monitor.wait_idle()

    assert [r.link for r in records] == [LINK_A]
    record = monitor.link_history.find(LINK_A)
    assert record.status == LinkStatus.RESOLVED
    assert record.media_url == 'https://cdn/x.mp4'
    assert remote_services.resolve_calls == [LINK_A]

    logs = monitor.log_manager.get_logs()
    assert len(logs) == 1
    assert logs[0].kind == LogKind.RESOLVED
    assert logs[0].media_url == 'https://cdn/x.mp4'


@pytest.mark.asyncio
async def test_failed_resolution_is_not_downloaded(monitor_factory, remote_services):
    remote_services.resolve_responses[LINK_A] = (200, {'code': 500, 'msg': 'boom'})
    monitor = monitor_factory(auto_download=True)

    monitor.process_clipboard_change(LINK_A)
    await monitor.wait_idle()

    record = monitor.link_history.find(LINK_A)
    assert record.status == LinkStatus.FAILED
    assert record.error == 'boom'
    logs = monitor.log_manager.get_logs()
    assert [entry.kind for entry in logs] == [LogKind.FAILED]
    assert logs[0].error == 'boom'
    assert sum(remote_services.media_hits.values()) == 0


@pytest.mark.asyncio
async def test_sequential_naming_numbers_downloads(monitor_factory, remote_services, download_dir):
    remote_services.add_video(LINK_A, 'a.mp4', b'first video')
    remote_services.add_video(LINK_B, 'b.mp4', b'second video')
    monitor = monitor_factory(auto_download=True, naming_rule='sequential')

    monitor.process_clipboard_change(f"第一个 {LINK_A}")
    await monitor.wait_idle()
    monitor.process_clipboard_change(f"第二个 {LINK_B}")
    await monitor.wait_idle()

    files = sorted(download_dir.iterdir())
    assert len(files) == 2
    assert files[0].name.startswith('video_0001_')
    assert files[0].read_bytes() == b'first video'
    assert files[1].name.startswith('video_0002_')
    assert files[1].read_bytes() == b'second video'

    stats = monitor.log_manager.get_stats()
    assert stats['resolved'] == 2
    assert stats['downloaded'] == 2
    assert monitor.get_status()['downloads_completed'] == 2


@pytest.mark.asyncio
async def test_download_waits_for_delay(monitor_factory, remote_services, download_dir):
    remote_services.add_video(LINK_A, 'a.mp4', b'video')
    monitor = monitor_factory(auto_download=True, download_delay_ms=200)

    monitor.process_clipboard_change(LINK_A)
    await wait_until(lambda: monitor.link_history.find(LINK_A).status == LinkStatus.RESOLVED)
    assert remote_services.media_hits['a.mp4'] == 0

    await monitor.wait_idle()
    assert remote_services.media_hits['a.mp4'] == 1
    assert len(list(download_dir.iterdir())) == 1


@pytest.mark.asyncio
async def test_known_links_are_not_processed_twice(monitor_factory, remote_services):
    remote_services.add_video(LINK_A, 'a.mp4', b'video')
    monitor = monitor_factory()

    first = monitor.process_clipboard_change(f"{LINK_A} {LINK_B}")
    second = monitor.process_clipboard_change(f"再次分享 {LINK_A}")
    await monitor.wait_idle()

    assert [r.link for r in first] == [LINK_A, LINK_B]
    assert second == []
    assert sorted(remote_services.resolve_calls) == sorted([LINK_A, LINK_B])
    assert len(monitor.clipboard_history) == 2
    assert monitor.get_status()['links'] == {'pending': 0, 'resolved': 1, 'failed': 1}


@pytest.mark.asyncio
async def test_links_in_one_sample_resolve_concurrently(monitor_factory, remote_services):
    remote_services.resolve_responses[LINK_A] = (200, {'code': 200, 'data': {'url': 'https://cdn/a.mp4'}})
    remote_services.resolve_responses[LINK_B] = (200, {'code': 200, 'data': {'url': 'https://cdn/b.mp4'}})
    remote_services.resolve_delays[LINK_A] = 0.5
    monitor = monitor_factory()

    monitor.process_clipboard_change(f"{LINK_A} {LINK_B}")
    await wait_until(lambda: monitor.link_history.find(LINK_B).status == LinkStatus.RESOLVED)

    # 较慢的链接在响应返回前保持待处理
    assert monitor.link_history.find(LINK_A).status == LinkStatus.PENDING
    await monitor.wait_idle()

    assert remote_services.resolve_max_active == 2
    assert monitor.link_history.find(LINK_A).status == LinkStatus.RESOLVED
    # 日志按完成顺序写入，最新的在前
    logs = monitor.log_manager.get_logs()
    assert [log.source_link for log in logs] == [LINK_A, LINK_B]
    assert [log.kind for log in logs] == [LogKind.RESOLVED, LogKind.RESOLVED]


@pytest.mark.asyncio
async def test_text_without_links_only_recorded(monitor_factory, remote_services):
    monitor = monitor_factory()

    assert monitor.process_clipboard_change("没有链接的普通文本") == []
    await monitor.wait_idle()

    assert len(monitor.clipboard_history) == 1
    assert len(monitor.link_history) == 0
    assert remote_services.resolve_calls == []


@pytest.mark.asyncio
async def test_poller_feeds_monitor(monitor_factory, remote_services, clipboard_stub):
    remote_services.add_video(LINK_A, 'a.mp4', b'video')
    clipboard_stub.content = f"看看这个 {LINK_A}"
    monitor = monitor_factory()

    await monitor.start()
    try:
        await wait_until(lambda: monitor.link_history.contains(LINK_A))
        await monitor.wait_idle()
        assert monitor.get_status()['running'] is True
    finally:
        await monitor.stop()

    assert monitor.get_status()['running'] is False
    assert remote_services.resolve_calls == [LINK_A]


@pytest.mark.asyncio
async def test_clearing_clipboard_history_allows_same_text_again(monitor_factory, clipboard_stub):
    clipboard_stub.content = "同一段文本"
    monitor = monitor_factory()

    await monitor.poller.tick()
    await monitor.poller.tick()
    assert len(monitor.clipboard_history) == 1

    monitor.clear_clipboard_history()
    assert len(monitor.clipboard_history) == 0

    await monitor.poller.tick()
    assert len(monitor.clipboard_history) == 1


@pytest.mark.asyncio
async def test_resolve_webhooks_receive_context(monitor_factory, remote_services):
    remote_services.add_video(LINK_A, 'a.mp4', b'video', title='标题', author='作者')
    remote_services.resolve_responses[LINK_B] = (200, {'code': 404, 'msg': '视频不存在'})
    monitor = monitor_factory()
    for trigger in ('resolve_success', 'resolve_failed'):
        monitor.webhook_engine.add_webhook({
            'name': trigger,
            'trigger': trigger,
            'config': {
                'url': remote_services.url('/hook'),
                'body': {'type': 'json', 'data': {
                    'event': trigger,
                    'link': '{{shareLink}}',
                    'title': '{{title}}',
                    'error': '{{error}}',
                }},
            },
        })

    monitor.process_clipboard_change(LINK_A)
    await monitor.wait_idle()
    monitor.process_clipboard_change(LINK_B)
    await monitor.wait_idle()

    payloads = [remote_services.hook_json(i) for i in range(len(remote_services.hook_requests))]
    assert payloads[0] == {'event': 'resolve_success', 'link': LINK_A,
                           'title': '标题', 'error': '{{error}}'}
    assert payloads[1]['event'] == 'resolve_failed'
    assert payloads[1]['link'] == LINK_B
    assert payloads[1]['error'] == '视频不存在'
    assert len(monitor.log_manager.get_logs(LogKind.WEBHOOK)) == 2


@pytest.mark.asyncio
async def test_download_complete_webhook(monitor_factory, remote_services, download_dir):
    remote_services.add_video(LINK_A, 'a.mp4', b'0123456789')
    monitor = monitor_factory(auto_download=True, naming_rule='identifier')
    monitor.webhook_engine.add_webhook({
        'config': {
            'url': remote_services.url('/hook'),
            'body': {'type': 'json', 'data': {'file': '{{fileName}}', 'size': '{{fileSize}}'}},
        },
    })

    monitor.process_clipboard_change(LINK_A)
    await monitor.wait_idle()

    assert (download_dir / 'abc123.mp4').read_bytes() == b'0123456789'
    assert remote_services.hook_json() == {'file': 'abc123.mp4', 'size': '10'}
    kinds = [entry.kind for entry in monitor.log_manager.get_logs()]
    assert kinds == [LogKind.WEBHOOK, LogKind.DOWNLOADED, LogKind.RESOLVED]


@pytest.mark.asyncio
async def test_apply_settings_updates_components(monitor_factory, remote_services):
    monitor = monitor_factory(max_logs=5, max_history=5)

    monitor.apply_settings(monitor.settings.model_copy(update={
        'monitor_interval_ms': 1000,
        'max_logs': 2,
        'max_history': 3,
        'platform_domain': 'v.other.com',
        'request_timeout': 5,
    }))

    assert monitor.poller.config.interval_ms == 1000
    assert monitor.log_manager.max_logs == 2
    assert monitor.clipboard_history.capacity == 3
    assert monitor.link_history.capacity == 3
    assert monitor.resolver.timeout == 5
    assert monitor.downloader.link_extractor is monitor.link_extractor
    assert monitor.link_extractor.extract(f"{LINK_A} https://v.other.com/xyz/") == ['https://v.other.com/xyz/']


@pytest.mark.asyncio
async def test_stop_cancels_pending_work(monitor_factory, remote_services, download_dir):
    remote_services.add_video(LINK_A, 'a.mp4', b'video')
    monitor = monitor_factory(auto_download=True, download_delay_ms=5000)

    await monitor.start()
    monitor.process_clipboard_change(LINK_A)
    await wait_until(lambda: monitor.link_history.find(LINK_A).status == LinkStatus.RESOLVED)
    await monitor.stop()

    assert monitor.get_status()['pending_tasks'] == 0
    assert remote_services.media_hits['a.mp4'] == 0
    assert not download_dir.exists() or not any(download_dir.iterdir())
