"""Tests for concurrent image prefetch."""

import asyncio
import io

import httpx
from PIL import Image

from modules.image_prefetch import MAX_IMAGE_EDGE, prefetch_images


def png_bytes(size=(40, 30), color="red", mode="RGB"):
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class CdnStub:
    """Serves a few fixed paths and counts requests."""

    def __init__(self):
        self.requests = []
        self.routes = {
            "/ok.png": httpx.Response(200, content=png_bytes()),
            "/big.png": httpx.Response(200, content=png_bytes((2000, 1000))),
            "/grey.png": httpx.Response(200, content=png_bytes(mode="L", color=128)),
            "/junk.png": httpx.Response(200, content=b"not an image"),
        }

    def __call__(self, request):
        self.requests.append(request.url.path)
        response = self.routes.get(request.url.path)
        if response is None:
            return httpx.Response(404)
        return httpx.Response(response.status_code, content=response.content)


class TestPrefetchImages:

    def test_fetches_distinct_urls_once(self):
        cdn = CdnStub()
        urls = ["https://cdn.test/ok.png", "https://cdn.test/ok.png", "", "https://cdn.test/grey.png"]

        images = asyncio.run(prefetch_images(urls, transport=httpx.MockTransport(cdn)))

        assert sorted(cdn.requests) == ["/grey.png", "/ok.png"]
        assert set(images) == {"https://cdn.test/ok.png", "https://cdn.test/grey.png"}
        assert images["https://cdn.test/grey.png"].mode in ("RGB", "RGBA")

    def test_failures_are_left_out(self):
        cdn = CdnStub()
        urls = ["https://cdn.test/ok.png", "https://cdn.test/missing.png", "https://cdn.test/junk.png"]

        images = asyncio.run(prefetch_images(urls, transport=httpx.MockTransport(cdn)))

        assert list(images) == ["https://cdn.test/ok.png"]

    def test_transport_errors_are_left_out(self):
        def handler(request):
            raise httpx.ConnectTimeout("slow cdn")

        images = asyncio.run(prefetch_images(["https://cdn.test/a.png"], transport=httpx.MockTransport(handler)))
        assert images == {}

    def test_large_images_are_downscaled(self):
        images = asyncio.run(
            prefetch_images(["https://cdn.test/big.png"], transport=httpx.MockTransport(CdnStub()))
        )
        assert max(images["https://cdn.test/big.png"].size) == MAX_IMAGE_EDGE

    def test_no_urls_makes_no_requests(self):
        cdn = CdnStub()
        assert asyncio.run(prefetch_images([None, ""], transport=httpx.MockTransport(cdn))) == {}
        assert cdn.requests == []
