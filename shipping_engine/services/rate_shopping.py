"""
Rate Shopping Orchestrator

Fans out one carrier rate call per requested service level, all started
together and joined under a single shared deadline. Whatever has not
finished when the deadline passes is cancelled and its result discarded.
Cancelled calls get a short grace period to unwind; one that ignores
cancellation is abandoned rather than awaited, so the deadline holds.

A failed or timed-out level never fails the whole request; it is logged
and reported in RateShoppingResult.failures. Only when no level succeeds
does shop_rates raise NoRatesAvailable, carrying every level's failure.

Quotes come back unsorted, in the request order of the levels that
succeeded. Ranking them is the caller's business.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from shipping_engine.core.config import settings
from shipping_engine.core.exceptions import NoRatesAvailable, ShippingEngineError
from shipping_engine.core.utils import sanitize_for_logging
from shipping_engine.models.carrier import CarrierCode
from shipping_engine.models.shipment import Address, Package, RateQuote
from shipping_engine.modules.shipping.carriers.base import BaseCarrier
from shipping_engine.modules.shipping.services import ServiceLevelRequest

logger = logging.getLogger(__name__)

TIMEOUT_CODE = "DEADLINE_EXCEEDED"
NOT_CONFIGURED_CODE = "CARRIER_NOT_CONFIGURED"
NO_RATES_CODE = "NO_RATES_RETURNED"

# How long cancelled stragglers may take to unwind before they are abandoned
CANCEL_GRACE_SECONDS = 0.05


def _discard_outcome(task: asyncio.Task) -> None:
    # Retrieve the outcome of an abandoned call so asyncio does not report it
    if not task.cancelled():
        task.exception()


@dataclass(frozen=True)
class RateFailure:
    """Why one service level produced no quote."""
    carrier: CarrierCode
    service_code: str
    code: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "carrier": self.carrier.value,
            "service_code": self.service_code,
            "code": self.code,
            "message": self.message,
        }


@dataclass
class RateShoppingResult:
    quotes: List[RateQuote] = field(default_factory=list)
    failures: List[RateFailure] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "quotes": [q.to_dict() for q in self.quotes],
            "failures": [f.to_dict() for f in self.failures],
        }


class RateShoppingOrchestrator:
    """
    Concurrent rate shopping across carrier service levels.

    Args:
        carriers: Configured carriers keyed by code. A level whose carrier is
            missing here counts as a failure for that level.
        deadline_seconds: Shared deadline for the whole fan-out.
        cancel_grace_seconds: Bound on waiting for cancelled calls to unwind.
    """

    def __init__(
        self,
        carriers: Mapping[CarrierCode, BaseCarrier],
        deadline_seconds: Optional[float] = None,
        cancel_grace_seconds: float = CANCEL_GRACE_SECONDS,
    ):
        if deadline_seconds is None:
            deadline_seconds = settings.SHIPPING_RATE_DEADLINE_SECONDS
        if deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be greater than zero")
        self._carriers = dict(carriers)
        self.deadline_seconds = deadline_seconds
        self.cancel_grace_seconds = cancel_grace_seconds

    async def _quote_level(
        self,
        carrier: BaseCarrier,
        level: ServiceLevelRequest,
        origin: Address,
        destination: Address,
        packages: Sequence[Package],
    ) -> List[RateQuote]:
        quotes = await carrier.get_rates(
            origin, destination, list(packages), service_code=level.service_code
        )
        return [q for q in quotes if q.service_code == level.service_code]

    async def shop_rates(
        self,
        origin: Address,
        destination: Address,
        packages: Sequence[Package],
        service_levels: Sequence[ServiceLevelRequest],
    ) -> RateShoppingResult:
        """
        Quote every service level concurrently under one deadline.

        Raises:
            ValueError: service_levels or packages is empty
            NoRatesAvailable: no level produced a quote
        """
        levels = list(service_levels)
        if not levels:
            raise ValueError("At least one service level is required")
        if not packages:
            raise ValueError("At least one package is required")

        start = time.monotonic()
        # (level, task or None) in request order; None means no carrier to ask
        branches = []
        for level in levels:
            carrier = self._carriers.get(level.carrier)
            if carrier is None:
                branches.append((level, None))
                continue
            task = asyncio.create_task(
                self._quote_level(carrier, level, origin, destination, packages),
                name=f"rate:{level}",
            )
            branches.append((level, task))

        tasks = [task for _, task in branches if task is not None]
        try:
            if tasks:
                await asyncio.wait(tasks, timeout=self.deadline_seconds)
        finally:
            stragglers = {task for task in tasks if not task.done()}
            for task in stragglers:
                task.cancel()
                task.add_done_callback(_discard_outcome)
            if stragglers:
                await asyncio.wait(stragglers, timeout=self.cancel_grace_seconds)

        result = RateShoppingResult()
        for level, task in branches:
            failure = self._collect(level, task, result.quotes, stragglers)
            if failure is not None:
                logger.warning(
                    f"Rate level {level} failed: {failure.code} - "
                    f"{sanitize_for_logging(failure.message)}"
                )
                result.failures.append(failure)

        elapsed = time.monotonic() - start
        logger.info(
            f"Rate shopping finished in {elapsed:.2f}s: {len(result.quotes)} quotes, "
            f"{len(result.failures)}/{len(levels)} levels failed"
        )

        if not result.quotes:
            raise NoRatesAvailable(
                f"No rates available from {len(levels)} requested service levels",
                failures=[f.to_dict() for f in result.failures],
            )

        return result

    def _collect(
        self,
        level: ServiceLevelRequest,
        task: Optional[asyncio.Task],
        quotes: List[RateQuote],
        timed_out: Set[asyncio.Task],
    ) -> Optional[RateFailure]:
        """Append a finished branch's quotes, or describe why it has none."""
        def failure(code: str, message: str) -> RateFailure:
            return RateFailure(level.carrier, level.service_code, code, message)

        if task is None:
            return failure(NOT_CONFIGURED_CODE, f"Carrier {level.carrier.value} is not configured")

        if task in timed_out or task.cancelled():
            return failure(TIMEOUT_CODE, f"No response within {self.deadline_seconds}s")

        exc = task.exception()
        if isinstance(exc, ShippingEngineError):
            return failure(exc.code, exc.message)
        if exc is not None:
            logger.error(f"Unexpected error quoting {level}: {exc!r}")
            return failure(type(exc).__name__, str(exc))

        level_quotes = task.result()
        if not level_quotes:
            return failure(NO_RATES_CODE, "Carrier returned no rate for this service")

        quotes.extend(level_quotes)
        return None
