"""
短链解析器测试
"""

import pytest

from douyin_monitor.clipboard_models import LinkRecord, LinkStatus, LogKind
from douyin_monitor.resolver import LinkResolver

LINK = "https://v.platform.com/abc123/"


@pytest.fixture
def resolver(remote_services, http_session, log_collector):
    return LinkResolver(
        api_url=remote_services.url('/api/douyin'),
        log_sink=log_collector,
        session=http_session,
        timeout=5,
    )


def make_record(link: str = LINK) -> LinkRecord:
    return LinkRecord(link=link, original_content=f"看看 {link} 不错")


class TestLinkResolver:
    """远程解析"""

    @pytest.mark.asyncio
    async def test_resolve_success(self, resolver, remote_services, log_collector):
        remote_services.resolve_responses[LINK] = (
            200, {'code': 200, 'data': {'url': 'https://cdn/x.mp4', 'title': '标题', 'author': '作者'}}
        )
        record = make_record()

        assert await resolver.resolve(record) is True

        assert record.status == LinkStatus.RESOLVED
        assert record.media_url == 'https://cdn/x.mp4'
        assert record.title == '标题'
        assert record.author == '作者'
        assert remote_services.resolve_calls == [LINK]
        assert [entry.kind for entry in log_collector.entries] == [LogKind.RESOLVED]
        assert log_collector.entries[0].media_url == 'https://cdn/x.mp4'
        assert log_collector.entries[0].original_text == record.original_content

    @pytest.mark.asyncio
    async def test_api_error_message_kept_verbatim(self, resolver, remote_services, log_collector):
        remote_services.resolve_responses[LINK] = (200, {'code': 500, 'msg': 'boom'})
        record = make_record()

        assert await resolver.resolve(record) is False

        assert record.status == LinkStatus.FAILED
        assert record.error == 'boom'
        assert record.media_url is None
        assert [entry.kind for entry in log_collector.entries] == [LogKind.FAILED]
        assert log_collector.entries[0].error == 'boom'

    @pytest.mark.asyncio
    async def test_missing_url_uses_default_message(self, resolver, remote_services):
        remote_services.resolve_responses[LINK] = (200, {'code': 200, 'data': {}})
        record = make_record()

        await resolver.resolve(record)

        assert record.status == LinkStatus.FAILED
        assert record.error == '解析失败'

    @pytest.mark.asyncio
    async def test_http_error_status(self, resolver, remote_services):
        remote_services.resolve_responses[LINK] = (503, {'code': 503, 'msg': 'busy'})
        record = make_record()

        await resolver.resolve(record)

        assert record.status == LinkStatus.FAILED
        assert record.error.startswith('HTTP 503')

    @pytest.mark.asyncio
    async def test_malformed_json(self, resolver, remote_services, log_collector):
        remote_services.resolve_responses[LINK] = (200, 'not json')
        record = make_record()

        await resolver.resolve(record)

        assert record.status == LinkStatus.FAILED
        assert len(log_collector.of_kind(LogKind.FAILED)) == 1

    @pytest.mark.asyncio
    async def test_network_failure(self, http_session, log_collector):
        resolver = LinkResolver(api_url='http://127.0.0.1:9/api', log_sink=log_collector,
                                session=http_session, timeout=5)
        record = make_record()

        assert await resolver.resolve(record) is False
        assert record.status == LinkStatus.FAILED
        assert record.error

    @pytest.mark.asyncio
    async def test_single_attempt_only(self, resolver, remote_services):
        remote_services.resolve_responses[LINK] = (500, 'error')

        await resolver.resolve(make_record())

        assert remote_services.resolve_calls == [LINK]

    @pytest.mark.asyncio
    async def test_owns_session_when_not_injected(self, remote_services):
        remote_services.resolve_responses[LINK] = (200, {'code': 200, 'data': {'url': 'u'}})
        resolver = LinkResolver(api_url=remote_services.url('/api/douyin'))
        try:
            assert await resolver.resolve(make_record()) is True
        finally:
            await resolver.close()
