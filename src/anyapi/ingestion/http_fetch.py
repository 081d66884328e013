"""Download of API descriptions over HTTP."""

from typing import Dict, Optional, Tuple
import logging

import aiohttp

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(filename)s:%(lineno)d - %(message)s"
)

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 30.0


async def fetch_text(
    url: str,
    timeout: Optional[float] = None,
    headers: Optional[Dict[str, str]] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> Tuple[str, str]:
    """GET ``url`` and return its body text and Content-Type.

    Args:
        url: Absolute URL to download.
        timeout: Total timeout in seconds.
        headers: Optional request headers.
        session: Optional session to reuse; a private one is opened otherwise.

    Returns:
        ``(text, content_type)``.

    Raises:
        aiohttp.ClientResponseError: For non-2xx responses.
        aiohttp.ClientError: For connection failures.
        asyncio.TimeoutError: When the timeout elapses.
    """
    client_timeout = aiohttp.ClientTimeout(total=timeout or DEFAULT_FETCH_TIMEOUT)
    request_headers = {"Accept": "application/json, application/yaml, text/yaml, */*"}
    request_headers.update(headers or {})

    async def _get(active: aiohttp.ClientSession) -> Tuple[str, str]:
        async with active.get(url, headers=request_headers, timeout=client_timeout) as response:
            response.raise_for_status()
            text = await response.text()
            return text, response.headers.get("Content-Type", "")

    try:
        if session is not None:
            return await _get(session)
        async with aiohttp.ClientSession() as own_session:
            return await _get(own_session)
    except aiohttp.ClientResponseError as e:
        logger.error(f"Fetching {url} failed with HTTP {e.status}: {e.message}")
        raise
    except aiohttp.ClientError as e:
        logger.error(f"Fetching {url} failed: {e}")
        raise
