"""
URL Resolver - polls the backend until the uploaded file has a public URL.

Storage backends are eventually consistent: a file can be stored and still
have no URL for a while. Attempts are strictly sequential.
"""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from ..exceptions import ResolutionError
from ..models import StorageHandle, UploadConfig
from ..utils.deadline import CancellationToken
from ..protocols import ITransportClient

logger = logging.getLogger(__name__)

AttemptCallback = Callable[[int, int], Union[None, Awaitable[None]]]


class UrlResolver:
    """Bounded retry-with-delay loop around ITransportClient.resolve_url."""

    def __init__(self, transport: ITransportClient, max_attempts: int = 3, delay: float = 1.0):
        """
        Initialize resolver.

        Args:
            transport: Backend that resolves storage handles
            max_attempts: Number of resolve attempts before giving up
            delay: Seconds to wait between attempts
        """
        self._transport = transport
        self._max_attempts = max(1, max_attempts)
        self._delay = delay

    @classmethod
    def from_config(cls, transport: ITransportClient, config: UploadConfig) -> "UrlResolver":
        return cls(transport, config.resolve_max_retries, config.resolve_retry_delay)

    async def resolve(
        self,
        handle: StorageHandle,
        token: Optional[CancellationToken] = None,
        on_attempt: Optional[AttemptCallback] = None,
    ) -> str:
        """
        Resolve handle to its public URL.

        A None result and an exception both count as a failed attempt.

        Raises:
            ResolutionError: every attempt failed
            OperationCancelled: token was cancelled between attempts
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self._max_attempts + 1):
            if token is not None:
                token.raise_if_cancelled()

            if on_attempt is not None:
                result = on_attempt(attempt, self._max_attempts)
                if inspect.isawaitable(result):
                    await result

            try:
                url = await self._transport.resolve_url(handle)
            except Exception as e:
                last_error = e
                url = None
                logger.warning(f"[resolve] Attempt {attempt}/{self._max_attempts} for {handle} failed: {e}")
            else:
                if not url:
                    logger.info(f"[resolve] Attempt {attempt}/{self._max_attempts}: URL for {handle} not ready")

            if token is not None:
                token.raise_if_cancelled()

            if url:
                logger.info(f"[resolve] {handle} -> {url}")
                return url

            if attempt < self._max_attempts:
                await asyncio.sleep(self._delay)

        raise ResolutionError(self._max_attempts, last_error)
