"""
Primary/secondary failover across AI backends.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from ..exceptions import AllProvidersFailedError, ProviderError
from .providers import CompletionBackend, CompletionRequest, ProviderCallResult

logger = logging.getLogger(__name__)

PRIMARY = "primary"
SECONDARY = "secondary"


class ProviderGateway:
    """Sends a completion to the primary backend, then to the secondary on failure.

    There are no retries inside the gateway: each backend gets exactly one
    attempt per call. The primary is always tried first.
    """

    def __init__(self,
                 primary: Optional[CompletionBackend],
                 secondary: Optional[CompletionBackend]):
        self.primary = primary
        self.secondary = secondary
        self._stats = {PRIMARY: {"calls": 0, "failures": 0}, SECONDARY: {"calls": 0, "failures": 0}}

    async def complete(self,
                       messages: List[Dict[str, str]],
                       max_tokens: int = 4000,
                       temperature: float = 0.7,
                       top_p: Optional[float] = 0.95,
                       response_format: Optional[Dict[str, Any]] = None) -> ProviderCallResult:
        """Run a completion with failover.

        Args:
            messages: Role/content message list
            max_tokens: Output token cap
            temperature: Sampling temperature
            top_p: Nucleus sampling value
            response_format: Structured-output schema, if any

        Returns:
            ProviderCallResult tagged ``primary`` or ``secondary``

        Raises:
            AllProvidersFailedError: If both backends fail
        """
        request = CompletionRequest(
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            top_p=top_p,
            response_format=response_format,
        )

        try:
            return await self._call(PRIMARY, self.primary, request)
        except Exception as primary_error:
            logger.warning(f"Primary provider failed, switching to secondary: {primary_error}")

            try:
                result = await self._call(SECONDARY, self.secondary, request)
            except Exception as secondary_error:
                logger.error(
                    f"All providers failed. primary: {primary_error}; secondary: {secondary_error}"
                )
                raise AllProvidersFailedError(primary_error, secondary_error) from secondary_error

            logger.info(f"Secondary provider answered after primary failure ({result.model})")
            return result

    async def _call(self,
                    slot: str,
                    backend: Optional[CompletionBackend],
                    request: CompletionRequest) -> ProviderCallResult:
        if backend is None:
            raise ProviderError(slot, "Backend not configured", api_error_code="not_configured")

        self._stats[slot]["calls"] += 1
        started = time.monotonic()
        try:
            result = await backend.complete(request)
        except Exception:
            self._stats[slot]["failures"] += 1
            raise

        result.backend = slot
        logger.info(
            f"{slot} provider ({backend.name}) completed in {time.monotonic() - started:.2f}s: "
            f"model={result.model}, finish_reason={result.finish_reason}, "
            f"tokens={result.total_tokens}"
        )
        return result

    async def health_check(self) -> Dict[str, bool]:
        """Send a tiny prompt to each configured backend."""
        request = CompletionRequest(
            messages=[{"role": "user", "content": "Say hello"}],
            max_tokens=5,
            temperature=0.0,
        )
        results = {}
        for slot, backend in ((PRIMARY, self.primary), (SECONDARY, self.secondary)):
            if backend is None:
                results[slot] = False
                continue
            try:
                await backend.complete(request)
                results[slot] = True
            except Exception as e:
                logger.warning(f"Health check failed for {slot} provider: {e}")
                results[slot] = False
        return results

    def get_status(self) -> Dict[str, Any]:
        return {
            PRIMARY: {"configured": self.primary is not None, **self._stats[PRIMARY]},
            SECONDARY: {"configured": self.secondary is not None, **self._stats[SECONDARY]},
        }

    async def close(self) -> None:
        for backend in (self.primary, self.secondary):
            if backend is not None:
                await backend.close()
