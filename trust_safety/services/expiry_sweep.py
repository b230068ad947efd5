"""
Expiry sweep.
Periodic job: ends expired admin penalties, tells users when a level-3
stream ban is over and clears expired timeouts.
"""

import asyncio
import logging
from typing import Optional

from trust_safety.models.enums import NotificationType
from trust_safety.models.notification import NotificationIntent
from trust_safety.models.results import SweepSummary
from trust_safety.services.enforcement import EnforcementExecutor
from trust_safety.services.notification_dispatcher import NotificationDispatcher
from trust_safety.services.restrictions import ScopeRestrictions
from trust_safety.services.strike_ledger import StrikeLedger

logger = logging.getLogger(__name__)


class ExpirySweeper:

    def __init__(
        self,
        enforcement: EnforcementExecutor,
        ledger: StrikeLedger,
        restrictions: ScopeRestrictions,
        dispatcher: NotificationDispatcher,
    ):
        self.enforcement = enforcement
        self.ledger = ledger
        self.restrictions = restrictions
        self.dispatcher = dispatcher
        self._stopped: Optional[asyncio.Event] = None

    async def run_once(self) -> SweepSummary:
        summary = SweepSummary()

        for penalty in await self.enforcement.expired_penalties():
            await self.enforcement.deactivate_penalty(penalty.id, "expired")
            await self.dispatcher.dispatch(NotificationIntent(
                user_id=penalty.user_id,
                type=NotificationType.BAN_EXPIRED,
                title="Your restriction has ended",
                body="You can now interact again. Please follow the community rules.",
                payload={"penalty_id": str(penalty.id)},
            ))
            summary.penalties_expired += 1

        for strike in await self.ledger.ended_bans_pending_notice():
            await self.ledger.mark_expiry_notified(strike)
            await self.dispatcher.dispatch(NotificationIntent(
                user_id=strike.user_id,
                type=NotificationType.BAN_EXPIRED,
                title="Your stream ban has ended",
                body="You can now join this creator's streams again. Please follow the community rules.",
                payload={"strike_id": str(strike.id), "scope_id": strike.scope_id},
            ))
            summary.strike_bans_ended += 1

        # No notification for timeouts; they are minutes long
        summary.timeouts_removed = await self.restrictions.remove_expired_timeouts()

        logger.info(
            f"Expiry sweep: {summary.penalties_expired} penalties, "
            f"{summary.strike_bans_ended} strike bans, {summary.timeouts_removed} timeouts"
        )
        return summary

    async def run_forever(self, interval_seconds: float = 300.0) -> None:
        self._stopped = asyncio.Event()
        while not self._stopped.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Expiry sweep failed: {e!r}")
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        if self._stopped is not None:
            self._stopped.set()
