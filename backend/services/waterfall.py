from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

import httpx

from errors import AcquisitionError, NetworkError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

OK = "ok"
ABSENT = "absent"
SOFT_FAILURE = "soft_failure"
HARD_FAILURE = "hard_failure"


@dataclass
class Tier(Generic[T]):
    """
    Un escalón del waterfall.

    fetch: coroutine que devuelve el payload (o levanta).
    validate: predicado sobre el payload; False => ValidationError.
    terminal: el tier no puede fallar y siempre se corre, incluso
    después de un hard failure.
    timeout: cota en segundos para todo el tier (None = sin cota).
    """

    name: str
    fetch: Callable[[], Awaitable[T]]
    validate: Callable[[T], bool] = lambda payload: True
    terminal: bool = False
    timeout: Optional[float] = None


@dataclass
class TierOutcome(Generic[T]):
    tier: str
    status: str
    payload: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status == OK

    def describe(self) -> str:
        if self.ok:
            return f"{self.tier}: ok"
        if self.status == ABSENT:
            return f"{self.tier}: absent"
        return f"{self.tier}: {self.status} ({self.error})"


@dataclass
class WaterfallResult(Generic[T]):
    winner: Optional[TierOutcome[T]]
    attempts: List[TierOutcome[T]] = field(default_factory=list)

    @property
    def payload(self) -> Optional[T]:
        return self.winner.payload if self.winner else None

    @property
    def tier(self) -> Optional[str]:
        return self.winner.tier if self.winner else None


def _classify(exc: BaseException) -> str:
    # errores esperables de upstream: seguir al próximo tier
    if isinstance(exc, (AcquisitionError, httpx.HTTPError)):
        return SOFT_FAILURE
    return HARD_FAILURE


async def attempt_tier(tier: Tier[T]) -> TierOutcome[T]:
    try:
        try:
            if tier.timeout is not None:
                payload = await asyncio.wait_for(tier.fetch(), timeout=tier.timeout)
            else:
                payload = await tier.fetch()
        except asyncio.TimeoutError as e:
            raise NetworkError(f"timeout después de {tier.timeout}s", source=tier.name) from e
        if payload is None:
            # ausente (ej: cache vacío): seguir sin tratarlo como error
            return TierOutcome(tier=tier.name, status=ABSENT)
        if not tier.validate(payload):
            raise ValidationError("el payload no pasó la validación", source=tier.name)
    except Exception as e:
        return TierOutcome(tier=tier.name, status=_classify(e), error=e)
    return TierOutcome(tier=tier.name, status=OK, payload=payload)


async def run_waterfall(tiers: Sequence[Tier[T]], label: str = "waterfall") -> WaterfallResult[T]:
    """
    Corre los tiers en orden estricto; gana el primero que valida.

    Un soft failure avanza al siguiente tier. Un hard failure saltea el
    resto de los tiers no terminales. Si ningún tier gana, winner es None.
    """
    attempts: List[TierOutcome[T]] = []
    aborted = False

    for tier in tiers:
        if aborted and not tier.terminal:
            continue

        outcome = await attempt_tier(tier)
        attempts.append(outcome)

        if outcome.ok:
            logger.debug("[%s] %s", label, outcome.describe())
            return WaterfallResult(winner=outcome, attempts=attempts)

        if outcome.status == ABSENT:
            logger.info("[%s] %s: sin datos", label, tier.name)
        elif outcome.status == HARD_FAILURE:
            logger.error("[%s] %s; abortando tiers en vivo", label, outcome.describe())
            aborted = True
        else:
            logger.warning("[%s] %s", label, outcome.describe())

    return WaterfallResult(winner=None, attempts=attempts)
