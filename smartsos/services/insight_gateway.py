"""
Short health insights from an LLM, with a canned fallback.

Key architectural decisions:
- Snapshot contract: the generator only ever sees a frozen PatientSnapshot
- Expected failures as values: generators return Result, never raise
- Fallback strategy: a deterministic, status-derived insight whenever the
  generator is unavailable, so the dashboard always has content
- No deduplication: overlapping requests all run, the last to finish wins
"""

import asyncio
from collections.abc import Coroutine
from typing import Any, Protocol

import structlog
from pydantic_ai import Agent

from smartsos.config import InsightConfig
from smartsos.domain.models import AlertLevel, Insight, InsightCategory, PatientSnapshot
from smartsos.domain.result import Result
from smartsos.services.patient_store import PatientStateStore

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = """You are an AI medical assistant for an elderly care dashboard called SmartSOS.
Your audience is the patient and their family caregivers.
Keep responses concise (under 40 words), empathetic, and clear.
Analyze the provided vitals (Heart Rate, BP, SpO2, Temperature) and give a specific
health insight or recommendation.
If vitals are normal, give positive reinforcement.
If vitals are abnormal, suggest a safe, non-medical immediate action (e.g., "Sit down",
"Drink water") and suggest checking with a doctor."""

EMPTY_RESPONSE = "Vitals monitored. Consult a doctor for detailed analysis."


class InsightUnavailableError(RuntimeError):
    """The insight generator cannot be reached (e.g. no API key configured)."""


class InsightGenerator(Protocol):
    async def generate(self, snapshot: PatientSnapshot) -> Result[Insight]: ...


def fallback_insight(snapshot: PatientSnapshot) -> Insight:
    """Canned insight derived only from the snapshot's alert level."""
    if snapshot.status == AlertLevel.CRITICAL:
        return Insight(
            content=(
                "CRITICAL ALERT: Heart rate spike detected (>120 BPM). "
                "Emergency protocols recommended immediately."
            ),
            category=InsightCategory.WARNING,
        )
    if snapshot.status == AlertLevel.WARNING:
        return Insight(
            content=(
                "Observation: Slight elevation in blood pressure detected. "
                "Advise patient to sit and hydrate."
            ),
            category=InsightCategory.WARNING,
        )
    return Insight(
        content="Health Status: Stable. Vitals are within normal ranges. Keep up the good work!",
        category=InsightCategory.POSITIVE,
    )


def categorize(snapshot: PatientSnapshot, text: str) -> InsightCategory:
    if snapshot.status in (AlertLevel.CRITICAL, AlertLevel.WARNING):
        return InsightCategory.WARNING
    lowered = text.lower()
    if any(word in lowered for word in ("good", "excellent", "stable")):
        return InsightCategory.POSITIVE
    return InsightCategory.INFO


class PydanticAIInsightGenerator:
    """Insight generator backed by a pydantic-ai Agent returning free text."""

    def __init__(self, config: InsightConfig) -> None:
        self.config = config
        self.logger = logger.bind(component="insight_generator", model=config.model_name)
        self._agent: Agent[None, str] | None = None

    @property
    def agent(self) -> Agent[None, str]:
        # Provider credentials are only resolved on the first run.
        if self._agent is None:
            self._agent = Agent(
                model=self.config.model_name,
                output_type=str,
                system_prompt=SYSTEM_PROMPT,
                defer_model_check=True,
            )
        return self._agent

    def build_prompt(self, snapshot: PatientSnapshot) -> str:
        return f"""Current Status: {snapshot.status.value}
Heart Rate: {snapshot.heart_rate:.0f} bpm
Blood Pressure: {snapshot.systolic}/{snapshot.diastolic} mmHg
Oxygen: {snapshot.oxygen_level}%
Temperature: {snapshot.temperature} °F

Generate a short health insight based on these numbers."""

    async def generate(self, snapshot: PatientSnapshot) -> Result[Insight]:
        if not self.config.openai_api_key:
            return Result.err(InsightUnavailableError("No insight API key configured"))

        try:
            result = await self.agent.run(
                self.build_prompt(snapshot),
                model_settings={
                    "temperature": self.config.temperature,
                    "max_tokens": self.config.max_tokens,
                },
            )
        except Exception as e:
            self.logger.error("insight_generation_failed", error=str(e))
            return Result.err(e)

        text = (result.output or "").strip() or EMPTY_RESPONSE
        return Result.ok(Insight(content=text, category=categorize(snapshot, text)))


class InsightRequestGateway:
    """Issues insight requests and holds the insight currently on display."""

    def __init__(
        self,
        store: PatientStateStore,
        generator: InsightGenerator,
    ) -> None:
        self.store = store
        self.generator = generator
        self.current: Insight | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self.logger = logger.bind(component="insight_gateway")

    @property
    def loading(self) -> bool:
        return bool(self._pending)

    def request_insight(self, snapshot: PatientSnapshot) -> asyncio.Task[Insight]:
        """Start one background request for `snapshot`."""
        return self._spawn(self.refresh(snapshot))

    def request_later(self, delay_seconds: float, status: AlertLevel) -> asyncio.Task[Insight]:
        """
        Request an insight after `delay_seconds`.

        The snapshot is taken from the live state when the delay elapses, with
        its status forced to `status`.
        """

        async def delayed() -> Insight:
            await asyncio.sleep(delay_seconds)
            return await self.refresh(self.store.current.snapshot(status=status))

        return self._spawn(delayed())

    async def refresh(self, snapshot: PatientSnapshot) -> Insight:
        """Run one request to completion and display its outcome."""
        try:
            result = await self.generator.generate(snapshot)
        except Exception as e:
            self.logger.error("insight_generator_raised", error=str(e))
            result = Result.err(e)

        if result.is_ok():
            insight = result.unwrap()
            self.logger.info("insight_received", category=insight.category.value)
        else:
            insight = fallback_insight(snapshot)
            self.logger.info(
                "insight_fallback_used",
                status=snapshot.status.value,
                reason=str(result.unwrap_err()),
            )

        self.current = insight
        return insight

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()

    def _spawn(self, coro: Coroutine[Any, Any, Insight]) -> asyncio.Task[Insight]:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task
