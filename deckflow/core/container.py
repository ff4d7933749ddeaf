"""
Service container — builds every long-lived collaborator once.

The app factory builds one Services instance at startup and keeps it on
app.state; tests build their own around a SQLite session factory and a
stub generator. Nothing here is a module-level singleton.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import Settings
from .flags import FeatureFlags
from .ttl_store import TtlStore
from ..orchestrator.orchestrator import GenerationOrchestrator
from ..orchestrator.registry import AgentRegistry, build_review_registry
from ..services.context import ContextRetriever, DocumentRetriever, ThemeResolver
from ..services.density import DensityLimits
from ..services.ledger import CreditLedger
from ..services.outline import OutlineStage, PendingOutline
from ..services.quality_review import QualityReviewPipeline, QualityThresholds
from ..services.slide_generation import SlideGenerationLoop
from ..services.structured import Generator, LLMGenerator, StepExecutor
from ..services.validation_gate import PendingValidation, ValidationGate

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    ledger: CreditLedger
    executor: StepExecutor
    retriever: ContextRetriever
    theme_resolver: ThemeResolver
    pending_outlines: TtlStore[PendingOutline]
    pending_validations: TtlStore[PendingValidation]
    auto_approve: TtlStore[bool]
    gate: ValidationGate
    outline_stage: OutlineStage
    slide_loop: SlideGenerationLoop
    quality: QualityReviewPipeline
    orchestrator: GenerationOrchestrator
    agents: AgentRegistry
    _sweeper: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def stores(self) -> tuple[TtlStore, ...]:
        return (self.pending_outlines, self.pending_validations, self.auto_approve)

    def start(self) -> None:
        """Start background sweeps: store expiry and stale reservations."""
        for store in self.stores:
            store.start()
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_reservations())

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        for store in self.stores:
            await store.close()

    async def _sweep_reservations(self) -> None:
        interval = self.settings.reservation_sweep_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                released = await self.ledger.cleanup_expired()
                if released:
                    logger.info("Released %d expired reservation(s)", released)
            except Exception as e:
                logger.warning("Reservation sweep failed: %s", e)


def build_services(
    settings: Settings,
    flags: FeatureFlags,
    session_factory: async_sessionmaker[AsyncSession],
    generator: Optional[Generator] = None,
    retriever: Optional[ContextRetriever] = None,
) -> Services:
    from ..agents.presentation.handler import PresentationAgent

    executor = StepExecutor(generator or LLMGenerator(), retry_delay=settings.generation_retry_delay)
    retriever = retriever or DocumentRetriever(session_factory)
    ledger = CreditLedger(session_factory, reservation_ttl=timedelta(minutes=settings.reservation_ttl_minutes))
    theme_resolver = ThemeResolver(session_factory, settings.default_theme_name)

    sweep = float(settings.store_sweep_seconds)
    pending_outlines: TtlStore[PendingOutline] = TtlStore(
        settings.pending_outline_ttl_minutes * 60,
        max_size=settings.pending_outline_max,
        sweep_interval=sweep,
        name="pending_outlines",
    )
    pending_validations: TtlStore[PendingValidation] = TtlStore(
        settings.pending_validation_ttl_minutes * 60,
        max_size=settings.store_max_size,
        sweep_interval=sweep,
        name="pending_validations",
    )
    auto_approve: TtlStore[bool] = TtlStore(
        settings.auto_approve_ttl_hours * 3600,
        max_size=settings.store_max_size,
        sweep_interval=sweep,
        name="auto_approve",
    )
    gate = ValidationGate(pending_validations, auto_approve)

    agents = build_review_registry(executor, retriever, settings, flags)
    outline_stage = OutlineStage(
        executor, retriever, pending=pending_outlines, max_retries=settings.generation_max_retries,
    )
    slide_loop = SlideGenerationLoop(
        executor,
        gate,
        retriever=retriever,
        content_reviewer=agents.get("content_review"),
        limits=DensityLimits(
            max_bullets=settings.density_max_bullets,
            max_words=settings.density_max_words,
            max_table_rows=settings.density_max_table_rows,
        ),
        window_size=settings.prior_slide_window,
        max_retries=settings.generation_max_retries,
    )
    quality = QualityReviewPipeline(
        style=agents.get("style"),
        narrative=agents.get("narrative"),
        structural=agents.get("structural"),
        fact_check=agents.get("fact_check"),
        thresholds=QualityThresholds(
            style=settings.style_threshold,
            narrative=settings.narrative_threshold,
            fact_check=settings.fact_check_threshold,
        ),
        style_batch_size=settings.style_batch_size,
        fact_check_batch_size=settings.fact_check_batch_size,
    )
    orchestrator = GenerationOrchestrator(
        ledger,
        outline_stage,
        slide_loop,
        theme_resolver,
        gate,
        quality=quality,
        deck_cost=settings.deck_generation_cost,
        outline_cost=settings.outline_generation_cost,
    )
    agents.register(PresentationAgent(orchestrator, outline_stage, gate))

    return Services(
        settings=settings,
        session_factory=session_factory,
        ledger=ledger,
        executor=executor,
        retriever=retriever,
        theme_resolver=theme_resolver,
        pending_outlines=pending_outlines,
        pending_validations=pending_validations,
        auto_approve=auto_approve,
        gate=gate,
        outline_stage=outline_stage,
        slide_loop=slide_loop,
        quality=quality,
        orchestrator=orchestrator,
        agents=agents,
    )
