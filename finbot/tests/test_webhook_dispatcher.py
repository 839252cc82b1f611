"""Fan-out delivery: isolation, envelope shape and lookup failures."""

import time

import httpx
import pytest

from finbot.core.database import get_db_session
from finbot.features.webhooks import registry
from finbot.features.webhooks.dispatcher import WebhookDispatcher
from finbot.tests.mocks import SubscriberSink


def _subscribe(url, event_type="venda_realizada"):
    with get_db_session() as session:
        return registry.create_subscription(session, url, event_type)


@pytest.mark.asyncio
async def test_no_subscribers_means_no_http_calls():
    sink = SubscriberSink()
    dispatcher = WebhookDispatcher(transport=sink.transport)

    results = await dispatcher.dispatch("venda_realizada", {"id": "u1"})

    assert results == []
    assert sink.calls == []


@pytest.mark.asyncio
async def test_one_failing_subscriber_does_not_block_the_others():
    _subscribe("https://a.example.com/hook")
    _subscribe("https://b.example.com/hook")
    _subscribe("https://c.example.com/hook")
    sink = SubscriberSink(failures={"https://b.example.com/hook": httpx.ConnectTimeout("timed out")})
    dispatcher = WebhookDispatcher(transport=sink.transport, timeout_seconds=1)

    results = await dispatcher.dispatch("venda_realizada", {"id": "u1"})

    by_url = {r.url: r for r in results}
    assert len(results) == 3
    assert by_url["https://a.example.com/hook"].ok is True
    assert by_url["https://c.example.com/hook"].ok is True
    assert by_url["https://b.example.com/hook"].ok is False
    assert "timed out" in by_url["https://b.example.com/hook"].error
    assert len(sink.bodies_for("https://a.example.com/hook")) == 1
    assert len(sink.bodies_for("https://c.example.com/hook")) == 1


@pytest.mark.asyncio
async def test_slow_subscriber_is_cut_off_at_the_timeout():
    _subscribe("https://a.example.com/hook")
    _subscribe("https://slow.example.com/hook")
    _subscribe("https://c.example.com/hook")
    sink = SubscriberSink(delays={"https://slow.example.com/hook": 5})
    dispatcher = WebhookDispatcher(transport=sink.transport, timeout_seconds=0.2)

    started = time.perf_counter()
    results = await dispatcher.dispatch("venda_realizada", {"id": "u1"})
    elapsed = time.perf_counter() - started

    by_url = {r.url: r for r in results}
    assert elapsed < 2
    assert by_url["https://slow.example.com/hook"].ok is False
    assert by_url["https://slow.example.com/hook"].status_code is None
    assert by_url["https://a.example.com/hook"].ok is True
    assert by_url["https://c.example.com/hook"].ok is True
    assert sorted(sink.urls()) == [
        "https://a.example.com/hook",
        "https://c.example.com/hook",
        "https://slow.example.com/hook",
    ]


@pytest.mark.asyncio
async def test_non_2xx_is_recorded_not_raised():
    _subscribe("https://a.example.com/hook")
    sink = SubscriberSink(failures={"https://a.example.com/hook": 503})
    dispatcher = WebhookDispatcher(transport=sink.transport)

    [result] = await dispatcher.dispatch("venda_realizada", {})

    assert result.ok is False
    assert result.status_code == 503


@pytest.mark.asyncio
async def test_envelope_shape_and_event_filtering():
    _subscribe("https://sales.example.com/hook", "venda_realizada")
    _subscribe("https://signup.example.com/hook", "criou_conta")
    sink = SubscriberSink()
    dispatcher = WebhookDispatcher(transport=sink.transport)

    await dispatcher.dispatch("criou_conta", {"email": "a@b.com"})

    assert sink.urls() == ["https://signup.example.com/hook"]
    body = sink.calls[0]["json"]
    assert body["evento"] == "criou_conta"
    assert body["dados"] == {"email": "a@b.com"}
    assert body["timestamp"].endswith("+00:00")


@pytest.mark.asyncio
async def test_subscription_lookup_failure_yields_empty_result():
    def broken_loader(event_type):
        raise RuntimeError("registry offline")

    sink = SubscriberSink()
    dispatcher = WebhookDispatcher(transport=sink.transport, subscription_loader=broken_loader)

    assert await dispatcher.dispatch("venda_realizada", {}) == []
    assert sink.calls == []
