#!/usr/bin/env python3
"""
Analysis Orchestrator.

Serves summary, lead and KPI analyses for a conversation. A cached analysis
is returned as long as no message arrived since it was computed; otherwise
the gateway is asked for a fresh one and the cache is updated. Concurrent
requests for the same conversation and kind share a single computation.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from audio_transcription import AudioTranscriber
from config_manager import AnalysisSettings
from dao.analysis_dao import AnalysisCacheDAO
from dao.message_analysis_dao import MessageAnalysisDAO
from dao.message_dao import MessageDAO
from dao.stats_dao import StatsDAO
from exceptions.analysis_exceptions import (
    AnalysisError, AnalysisUnavailable, EmptyConversation, PersistenceFailure, ProviderUnavailable,
)
from extractors.extraction import extract_information, merge_extractions
from extractors.metrics import compression_metrics, conversation_metrics
from extractors.stage import is_regression
from models import (
    AnalysisRecord, AnalysisResult, ConversationKey, Message,
    ANALYSIS_KINDS, SUMMARY, LEAD_INFO, CONVERSATION_KPIS,
)
from providers.base import format_conversation
from providers.gateway import InferenceGateway
from utils.error.error_handler import APIError, DatabaseError

logger = logging.getLogger(__name__)


@dataclass
class _Flight:
    task: asyncio.Task
    forced: bool


class AnalysisOrchestrator:
    """Cache-aware access to conversation analyses"""

    def __init__(self, message_dao: MessageDAO, cache_dao: AnalysisCacheDAO, gateway: InferenceGateway,
                 settings: AnalysisSettings = AnalysisSettings(),
                 message_analysis_dao: Optional[MessageAnalysisDAO] = None,
                 stats_dao: Optional[StatsDAO] = None,
                 transcriber: Optional[AudioTranscriber] = None,
                 clock: Callable[[], datetime] = datetime.now):
        """
        Args:
            message_dao: Message store
            cache_dao: Analysis cache; bound to the message store so deletions
                and contact migrations reach it
            gateway: Inference gateway
            settings: Windows, thresholds and bulk pacing
            message_analysis_dao: Target of the bulk per-message job
            stats_dao: Bulk run bookkeeping
            transcriber: Attaches audio transcripts before summarizing
            clock: Source of computed_at
        """
        self.message_dao = message_dao
        self.cache_dao = cache_dao
        self.gateway = gateway
        self.settings = settings
        self.message_analysis_dao = message_analysis_dao
        self.stats_dao = stats_dao
        self.transcriber = transcriber
        self._clock = clock
        self._in_flight: Dict[Tuple[ConversationKey, str], _Flight] = {}
        # Bumped when a conversation is deleted or moved; refreshes started before that must not write
        self._generations: Dict[ConversationKey, int] = {}
        self._key_locks: Dict[ConversationKey, asyncio.Lock] = {}

        cache_dao.bind(message_dao)

    def _lock(self, key: ConversationKey) -> asyncio.Lock:
        return self._key_locks.setdefault(key, asyncio.Lock())

    async def _io(self, func, *args):
        """Run a blocking store call off the event loop"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def get_analysis(self, key: ConversationKey, kind: str, force_refresh: bool = False) -> AnalysisResult:
        """
        Return the analysis of `kind` for a conversation, recomputing it when
        messages arrived since the cached one or when forced.

        Args:
            key: Conversation
            kind: One of summary, leadInfo, conversationKPIs
            force_refresh: Recompute even if nothing changed

        Returns:
            AnalysisResult; `stale` is set when a cached record is served because
            every provider failed

        Raises:
            ValueError: Unknown kind
            EmptyConversation: The conversation has no messages
            AnalysisUnavailable: Providers failed and nothing is cached
        """
        if kind not in ANALYSIS_KINDS:
            raise ValueError(f"Unknown analysis kind: {kind}")

        slot = (key, kind)
        while True:
            flight = self._in_flight.get(slot)
            if flight is None:
                break
            if flight.forced or not force_refresh:
                return await asyncio.shield(flight.task)
            # A forced request waits for a plain one and then runs its own
            await asyncio.wait([flight.task])

        task = asyncio.ensure_future(self._serve(key, kind, force_refresh))
        self._in_flight[slot] = _Flight(task=task, forced=force_refresh)
        task.add_done_callback(functools.partial(self._land, slot))
        return await asyncio.shield(task)

    def _land(self, slot: Tuple[ConversationKey, str], task: asyncio.Task) -> None:
        flight = self._in_flight.get(slot)
        if flight is not None and flight.task is task:
            del self._in_flight[slot]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"{slot[1]} of {slot[0]} failed: {task.exception()}")

    async def _load_record(self, key: ConversationKey, kind: str) -> Optional[AnalysisRecord]:
        try:
            return await self._io(self.cache_dao.get, key, kind)
        except DatabaseError as e:
            logger.warning(f"Could not read cached {kind} of {key}: {str(e)}")
            return None

    async def _serve(self, key: ConversationKey, kind: str, force_refresh: bool) -> AnalysisResult:
        generation = self._generations.get(key, 0)
        messages = await self._io(self.message_dao.list_messages, key)
        if not messages:
            raise EmptyConversation(f"Conversation {key} has no messages")

        prior = await self._load_record(key, kind)
        if prior is not None and not force_refresh and len(messages) <= prior.source_message_count:
            logger.debug(f"Serving cached {kind} of {key}: no new messages")
            return AnalysisResult(prior, cached=True, no_new_messages=True)

        if kind == SUMMARY and self.transcriber is not None:
            if await self._transcribe(key):
                messages = await self._io(self.message_dao.list_messages, key)

        window = messages[-self.settings.analysis_window:]
        context = {
            "contact_name": await self._io(self.message_dao.get_contact_name, key),
            "period_start": messages[0].timestamp,
            "period_end": messages[-1].timestamp,
        }

        logger.info(f"Computing {kind} of {key} from {len(messages)} messages")
        try:
            payload, provider = await self._compute(kind, window, context, prior)
        except ProviderUnavailable as e:
            if prior is not None:
                logger.warning(f"Serving stale {kind} of {key}: {str(e)}")
                return AnalysisResult(prior, cached=True, stale=True)
            raise AnalysisUnavailable(f"No {kind} available for {key}: {str(e)}") from e

        record = AnalysisRecord(
            key=key,
            kind=kind,
            payload=payload,
            source_message_count=len(messages),
            source_watermark_timestamp=messages[-1].timestamp,
            computed_at=self._clock(),
            provider=provider,
        )
        try:
            await self._persist(record, generation)
        except PersistenceFailure as e:
            logger.warning(f"Could not cache {kind} of {key}: {str(e)}")
        return AnalysisResult(record, cached=False)

    async def _transcribe(self, key: ConversationKey) -> int:
        try:
            return await self.transcriber.transcribe_pending(key)
        except (APIError, DatabaseError, OSError) as e:
            logger.warning(f"Audio transcription skipped for {key}: {str(e)}")
            return 0

    async def _compute(self, kind: str, window: List[Message], context: Dict[str, Any],
                       prior: Optional[AnalysisRecord]) -> Tuple[Dict[str, Any], str]:
        if kind == SUMMARY:
            summary, provider = await self.gateway.summarize(window, context)
            summary.extracted = merge_extractions([extract_information(m.text) for m in window]).to_dict()
            summary.compression = compression_metrics(
                format_conversation(window, with_time=False), summary.summary, self.settings.seconds_per_word
            )
            return summary.to_dict(), provider

        if kind == LEAD_INFO:
            lead, provider = await self.gateway.extract_lead_info(window, context)
            if prior is not None:
                lead.previous_stage = prior.payload.get("stage")
                lead.stage_regressed = is_regression(lead.previous_stage, lead.stage)
                if lead.stage_regressed:
                    logger.info(f"Stage moved back from {lead.previous_stage} to {lead.stage}")
            return lead.to_dict(), provider

        signals, provider = await self.gateway.analyze_for_kpis(window)
        payload = signals.to_dict()
        payload.update(conversation_metrics(window, now=self._clock()))
        return payload, provider

    async def _persist(self, record: AnalysisRecord, generation: int) -> None:
        async with self._lock(record.key):
            if self._generations.get(record.key, 0) != generation:
                raise PersistenceFailure(f"{record.key} was deleted or migrated while its {record.kind} was computed")
            try:
                written = await self._io(self.cache_dao.save, record)
            except DatabaseError as e:
                raise PersistenceFailure(str(e)) from e
        if not written:
            raise PersistenceFailure(f"{record.kind} of {record.key} would move its watermark backwards")

    async def _analyze_row(self, row: Dict[str, Any]) -> None:
        message = Message.from_row(row)
        analysis, provider = await self.gateway.analyze_message(message.text)
        await self._io(self.message_analysis_dao.save, row["account_id"], row["contact_number"],
                       message.id, analysis, provider)

    async def analyze_messages(self, limit: int = 100, only_new: bool = True) -> Dict[str, int]:
        """
        Bulk per-message analysis of the newest received messages

        Args:
            limit: Maximum number of messages
            only_new: Skip messages analyzed by an earlier run

        Returns:
            Dict with total, analyzed and errors
        """
        if self.message_analysis_dao is None:
            raise ValueError("Bulk analysis needs a message analysis store")

        run_id = await self._io(self.stats_dao.start_run, only_new) if self.stats_dao else None
        rows = await self._io(self.message_dao.list_recent_received, limit, 5, only_new)
        stats = {"total": len(rows), "analyzed": 0, "errors": 0}
        batch_size = max(1, self.settings.bulk_batch_size)

        logger.info(f"Analyzing {len(rows)} messages in batches of {batch_size}")
        for i in range(0, len(rows), batch_size):
            batch = rows[i:i + batch_size]
            results = await asyncio.gather(*(self._analyze_row(row) for row in batch), return_exceptions=True)
            for row, result in zip(batch, results):
                if isinstance(result, (AnalysisError, APIError, DatabaseError)):
                    stats["errors"] += 1
                    logger.warning(f"Message {row['id']} not analyzed: {str(result)}")
                elif isinstance(result, BaseException):
                    raise result
                else:
                    stats["analyzed"] += 1
            if i + batch_size < len(rows):
                await asyncio.sleep(self.settings.bulk_batch_delay)

        if self.stats_dao:
            await self._io(self.stats_dao.finish_run, run_id, stats)
        logger.info(f"Bulk analysis done: {stats['analyzed']}/{stats['total']} analyzed, {stats['errors']} errors")
        return stats

    async def delete_conversation(self, key: ConversationKey) -> int:
        """Delete a conversation; its cached analyses go with it"""
        async with self._lock(key):
            self._retire(key)
            return await self._io(self.message_dao.delete_conversation, key)

    async def migrate_contact(self, account_id: str, old_number: str, new_number: str) -> int:
        """Re-key a conversation; its cached analyses follow"""
        old_key = ConversationKey(account_id, old_number)
        async with self._lock(old_key):
            self._retire(old_key)
            return await self._io(self.message_dao.migrate_contact, account_id, old_number, new_number)

    def _retire(self, key: ConversationKey) -> None:
        self._generations[key] = self._generations.get(key, 0) + 1
        # Pending refreshes finish for their current callers but are no longer joined or cached
        for slot in [slot for slot in self._in_flight if slot[0] == key]:
            del self._in_flight[slot]
            logger.info(f"Discarding pending {slot[1]} of {key}")

    async def shutdown(self) -> None:
        for flight in list(self._in_flight.values()):
            flight.task.cancel()
        self._in_flight.clear()
        await self.gateway.close()
        if self.transcriber is not None:
            self.transcriber.close()
