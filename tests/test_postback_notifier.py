import asyncio
from decimal import Decimal
from aiohttp import web
from aiohttp.test_utils import TestServer
from postback_settlement.services.postback_notifier import PostbackNotifier, format_amount


def _run_against(handler, exercise):
    """Serve ``handler`` on /postback and run ``exercise(base_url)`` against it."""
    async def main():
        app = web.Application()
        app.router.add_get("/postback", handler)
        server = TestServer(app)
        await server.start_server()
        try:
            return await exercise(str(server.make_url("/postback")))
        finally:
            await server.close()
    return asyncio.run(main())


def test_build_url_encodes_clickid_and_amount():
    notifier = PostbackNotifier(base_url="https://track.example/postback")
    url = notifier.build_url("abc 123&x=1", Decimal("42.50"))
    assert url == "https://track.example/postback?clickid=abc%20123%26x%3D1&sum=42.50"


def test_format_amount_keeps_cents():
    assert format_amount(Decimal("42.50")) == "42.50"
    assert format_amount(Decimal("0.10")) == "0.10"


def test_send_success_returns_body():
    seen = {}

    async def handler(request):
        seen.update(request.query)
        return web.Response(text="OK")

    result = _run_against(handler, lambda base: PostbackNotifier(base_url=base, timeout_seconds=5).send("abc123", Decimal("42.50")))
    assert result.success is True
    assert result.response_body == "OK"
    assert result.status_code == 200
    assert seen == {"clickid": "abc123", "sum": "42.50"}
    assert result.url.endswith("/postback?clickid=abc123&sum=42.50")


def test_send_non_success_status_is_failure():
    async def handler(request):
        return web.Response(status=503, text="unavailable")

    result = _run_against(handler, lambda base: PostbackNotifier(base_url=base, timeout_seconds=5).send("abc123", Decimal("1.00")))
    assert result.success is False
    assert result.status_code == 503
    assert result.error_message == "HTTP error! status: 503"


def test_send_times_out():
    async def handler(request):
        await asyncio.sleep(0.5)
        return web.Response(text="too late")

    result = _run_against(handler, lambda base: PostbackNotifier(base_url=base, timeout_seconds=0.1).send("abc123", Decimal("1.00")))
    assert result.success is False
    assert result.error_message == "Postback request timed out after 0.1s"


def test_send_connection_refused_is_failure():
    notifier = PostbackNotifier(base_url="http://127.0.0.1:1/postback", timeout_seconds=2)
    result = asyncio.run(notifier.send("abc123", Decimal("1.00")))
    assert result.success is False
    assert result.error_message.startswith("Postback client error:")


def test_undecodable_success_body_is_still_success():
    async def handler(request):
        return web.Response(status=200, body=b"OK \xff\xfe", content_type="text/plain")

    result = _run_against(handler, lambda base: PostbackNotifier(base_url=base, timeout_seconds=5).send("abc123", Decimal("42.50")))
    assert result.success is True
    assert result.status_code == 200
    assert result.response_body.startswith("OK ")
    assert "\ufffd" in result.response_body


def test_failed_status_keeps_response_body():
    async def handler(request):
        return web.Response(status=503, body=b"maintenance \xff", content_type="text/plain")

    result = _run_against(handler, lambda base: PostbackNotifier(base_url=base, timeout_seconds=5).send("abc123", Decimal("1.00")))
    assert result.success is False
    assert result.error_message == "HTTP error! status: 503"
    assert result.response_body.startswith("maintenance")
