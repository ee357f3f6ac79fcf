"""Claude-assisted review of uncertain alignment pairs.

The model calls are made by the worker; this side hands over the API key,
fetches the cost estimate for confirmation and triggers the review.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from ..worker import endpoints
from .events import AIReviewCompleted, EventBus, OperationBegan, OperationFailed, ProgressChanged, RefreshRequested
from .session import PreferenceAccess, SessionGuard

__all__ = ["AIReviewResult", "AIReviewer"]

LOGGER = logging.getLogger(__name__)

_KIND = "ai-review"
_REVIEW_MESSAGE = "AI is reviewing alignments..."

CostConfirmation = Callable[[Mapping[str, Any]], Awaitable[bool]]


@dataclass(slots=True, frozen=True)
class AIReviewResult:
    improved: int
    remaining_uncertain: int
    overall_confidence: float

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AIReviewResult":
        return cls(
            improved=int(payload.get("improved") or 0),
            remaining_uncertain=int(payload.get("remainingUncertain") or 0),
            overall_confidence=float(payload.get("overallConfidence") or 0.0),
        )

    def summary(self) -> str:
        return (
            "AI Review Complete!\n\n"
            f"Improved pairs: {self.improved}\n"
            f"Remaining uncertain: {self.remaining_uncertain}\n"
            f"Overall confidence: {self.overall_confidence * 100:.1f}%"
        )


class AIReviewer:
    def __init__(self, guard: SessionGuard, bus: EventBus, settings: PreferenceAccess) -> None:
        self._guard = guard
        self._bus = bus
        self._settings = settings

    async def prepare(self) -> bool:
        """Pass the stored Claude API key to the worker."""

        self._guard.require_session()
        preferences = self._settings.preferences
        if not preferences.has_api_key:
            message = "Claude API key is not configured. Set it in Preferences before using AI Review."
            LOGGER.info("AI review requested without an API key")
            self._bus.publish(OperationFailed(_KIND, message))
            return False
        reply = await self._guard.call(endpoints.SET_CLAUDE_API_KEY, {"apiKey": preferences.claude_api_key})
        return reply is not None

    async def estimate_cost(self) -> dict[str, Any] | None:
        self._guard.require_session()
        return await self._guard.call(endpoints.ESTIMATE_AI_COST)

    async def improve(self) -> AIReviewResult | None:
        self._guard.require_session()
        self._bus.publish(OperationBegan(_KIND, _REVIEW_MESSAGE))
        try:
            # The review may take minutes; no client-side deadline.
            reply = await self._guard.call(endpoints.IMPROVE_WITH_AI, timeout=None)
        finally:
            self._bus.publish(ProgressChanged(_KIND, ""))
        if reply is None:
            return None
        result = AIReviewResult.from_payload(reply)
        LOGGER.info(
            "AI review improved %d pair(s), %d still uncertain",
            result.improved,
            result.remaining_uncertain,
        )
        self._bus.publish(AIReviewCompleted(result.improved, result.remaining_uncertain, result.overall_confidence))
        self._guard.mark_dirty()
        self._bus.publish(RefreshRequested("refresh-page"))
        return result

    async def review(self, confirm_cost: CostConfirmation) -> AIReviewResult | None:
        """Run the whole flow; ``confirm_cost`` sees the estimate and may decline."""

        if not await self.prepare():
            return None
        estimate = await self.estimate_cost()
        if estimate is None:
            return None
        if not await confirm_cost(estimate):
            LOGGER.debug("AI review declined after cost estimate")
            return None
        return await self.improve()
