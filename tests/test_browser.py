import asyncio

from site_discovery.adapters.browser import BrowserPage, decode_body
from site_discovery.utils.logger import LayerLogger


class StubPlaywrightPage:
    def __init__(self):
        self.handlers = {}

    def on(self, event, handler):
        self.handlers[event] = handler

    def remove_listener(self, event, handler):
        self.handlers.pop(event, None)


class StubResponse:
    def __init__(self, url, content_type, body):
        self.url = url
        self.headers = {"content-type": content_type}
        self._body = body

    async def body(self):
        return self._body

    async def text(self):
        return self._body.decode()


def test_decode_body_uses_declared_charset():
    body = "선풍기 57,900원".encode("euc-kr")

    assert decode_body(body, "application/json; charset=euc-kr") == "선풍기 57,900원"
    assert decode_body("fan".encode("utf-8"), "application/json") == "fan"
    assert decode_body(b"fan", "text/plain; charset=no-such-codec") == "fan"
    assert "�" in decode_body(body, "text/plain")


def test_captured_euc_kr_response_reaches_sink():
    raw = StubPlaywrightPage()
    page = BrowserPage(raw, LayerLogger("browser"))
    sink = []
    handler = page.capture_responses(lambda url, content_type: "json" in content_type, sink)

    response = StubResponse(
        "https://brand.co.kr/api/search",
        "application/json; charset=EUC-KR",
        '{"name": "선풍기 57,900원"}'.encode("euc-kr"),
    )
    asyncio.run(raw.handlers["response"](response))
    asyncio.run(raw.handlers["response"](StubResponse("https://brand.co.kr/logo.png", "image/png", b"\x89PNG")))

    assert sink == [("https://brand.co.kr/api/search", '{"name": "선풍기 57,900원"}')]

    page.release_capture(handler)
    assert "response" not in raw.handlers
