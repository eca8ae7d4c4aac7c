#!/usr/bin/env python3
"""
Inference Provider Gateway.

Tries the remote provider first while it is reachable and falls back to the
local provider on any provider error. Callers always get a canonical payload
plus the name of the provider that produced it.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from config_manager import AnalysisSettings
from exceptions.analysis_exceptions import ProviderError, ProviderUnavailable
from models import KPISignals, LeadPayload, Message, MessageAnalysis, SummaryPayload
from providers.base import AnalysisProvider, ProviderResponse
from providers.normalization import normalize
from utils.error.error_handler import APIError

logger = logging.getLogger(__name__)


class InferenceGateway:
    """Remote-first, local-fallback access to analysis providers"""

    def __init__(self, local: AnalysisProvider, remote: Optional[AnalysisProvider] = None,
                 settings: AnalysisSettings = AnalysisSettings(),
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            local: Provider used when the remote one is missing or failing
            remote: Preferred provider, optional
            settings: Availability TTL and normalization settings
            clock: Monotonic time source
        """
        self.local = local
        self.remote = remote
        self.settings = settings
        self._clock = clock
        self._available: Optional[bool] = None
        self._checked_at = 0.0
        self._probe: Optional[asyncio.Task] = None

    def _cache_valid(self) -> bool:
        return self._available is not None and self._clock() - self._checked_at < self.settings.availability_ttl

    def _mark(self, available: bool) -> None:
        self._available = available
        self._checked_at = self._clock()

    async def available(self) -> bool:
        """
        Whether the remote provider is reachable. The answer is cached for the
        TTL and concurrent callers share one probe.
        """
        if self.remote is None:
            return False
        if self._cache_valid():
            return self._available
        if self._probe is None or self._probe.done():
            self._probe = asyncio.ensure_future(self._run_probe())
        return await asyncio.shield(self._probe)

    async def _run_probe(self) -> bool:
        try:
            alive = await self.remote.ping()
        except (ProviderError, APIError) as e:
            logger.warning(f"Remote provider probe failed: {str(e)}")
            alive = False
        self._mark(alive)
        logger.info(f"Remote provider {'available' if alive else 'unavailable'}")
        return alive

    async def _dispatch(self, operation: str, call: Callable[[AnalysisProvider], Awaitable[ProviderResponse]]):
        if await self.available():
            try:
                response = await call(self.remote)
                return normalize(response, self.settings), response.provider
            except (ProviderError, APIError) as e:
                logger.warning(f"Remote {operation} failed, falling back to local: {str(e)}")
                self._mark(False)

        try:
            response = await call(self.local)
            return normalize(response, self.settings), response.provider
        except (ProviderError, APIError, ValueError, TypeError, KeyError) as e:
            logger.error(f"Local {operation} failed: {str(e)}")
            raise ProviderUnavailable(f"{operation} failed on every provider: {str(e)}") from e

    async def summarize(self, messages: List[Message], context: Dict[str, Any]) -> Tuple[SummaryPayload, str]:
        return await self._dispatch("summary", lambda p: p.summarize(messages, context))

    async def extract_lead_info(self, messages: List[Message], context: Dict[str, Any]) -> Tuple[LeadPayload, str]:
        return await self._dispatch("lead extraction", lambda p: p.extract_lead_info(messages, context))

    async def analyze_for_kpis(self, messages: List[Message]) -> Tuple[KPISignals, str]:
        return await self._dispatch("KPI analysis", lambda p: p.analyze_for_kpis(messages))

    async def analyze_message(self, text: str) -> Tuple[MessageAnalysis, str]:
        return await self._dispatch("message analysis", lambda p: p.analyze_message(text))

    async def close(self) -> None:
        if self._probe is not None and not self._probe.done():
            self._probe.cancel()
        if self.remote is not None:
            await self.remote.close()
        await self.local.close()
