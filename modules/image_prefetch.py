"""
Concurrent image prefetch for label rendering.

Product thumbnails and the store logo are fetched once per distinct URL,
all at the same time, before layout begins. A failed or undecodable image
is simply missing from the result; the renderer falls back to the store
logo or the product initial.
"""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Dict, Iterable, List, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from logging_config import get_logger


logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
MAX_IMAGE_EDGE = 512


def _decode(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA")
    image.thumbnail((MAX_IMAGE_EDGE, MAX_IMAGE_EDGE), Image.Resampling.LANCZOS)
    return image


async def prefetch_images(
    urls: Iterable[str],
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    log: Optional[logging.Logger] = None,
) -> Dict[str, Image.Image]:
    """
    Fetch every distinct URL concurrently.

    Args:
        urls: Image URLs (duplicates and blanks are ignored)
        timeout_seconds: Per-request timeout
        transport: Optional httpx transport (tests use httpx.MockTransport)
        log: Logger (defaults to the module logger)

    Returns:
        Decoded images keyed by URL, only for the fetches that succeeded
    """
    log = log or logger
    distinct: List[str] = list(dict.fromkeys(u for u in urls if u))
    if not distinct:
        return {}

    async with httpx.AsyncClient(
        timeout=timeout_seconds, transport=transport, follow_redirects=True
    ) as client:

        async def fetch(url: str) -> Optional[Image.Image]:
            try:
                response = await client.get(url)
                response.raise_for_status()
                return _decode(response.content)
            except httpx.HTTPError as e:
                log.warning(f"Image fetch failed for {url}: {e!r}")
            except (UnidentifiedImageError, OSError) as e:
                log.warning(f"Image at {url} could not be decoded: {e}")
            return None

        images = await asyncio.gather(*(fetch(url) for url in distinct))

    fetched = {url: image for url, image in zip(distinct, images) if image is not None}
    log.info(f"Prefetched {len(fetched)}/{len(distinct)} image(s)")
    return fetched
