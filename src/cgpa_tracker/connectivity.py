"""
Reachability probe used to choose between the server and the local cache.
"""

import logging
from typing import Optional

import httpx

from .errors import ReachabilityTimeout

logger = logging.getLogger(__name__)

DEFAULT_PROBE_URL = "https://www.google.com/generate_204"
DEFAULT_PROBE_TIMEOUT = 5.0


class ConnectivityProbe:
    """HEAD request against a 204 endpoint with a bounded timeout"""

    def __init__(
        self,
        url: str = DEFAULT_PROBE_URL,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def check(self) -> bool:
        """Probe once; raises ReachabilityTimeout when the timeout expires"""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.head(self.url)
            except httpx.TimeoutException as e:
                raise ReachabilityTimeout(f"No answer from {self.url} within {self.timeout}s") from e
        return response.is_success

    async def is_online(self) -> bool:
        """True when the probe URL answers successfully; never raises"""
        try:
            return await self.check()
        except ReachabilityTimeout as e:
            logger.info(f"Treating as offline: {e}")
            return False
        except httpx.HTTPError as e:
            logger.info(f"Treating as offline: {type(e).__name__}: {e}")
            return False


__all__ = ["DEFAULT_PROBE_URL", "DEFAULT_PROBE_TIMEOUT", "ConnectivityProbe"]
