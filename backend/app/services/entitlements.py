"""
Entitlement checks - the relay's only view of billing.

The payment provider is a collaborator that answers one question:
is there quota left? The default implementation answers it from the
Session Store by summing this month's session minutes.

Usage:
    from app.services.entitlements import get_entitlements

    await get_entitlements().require_quota()
"""

import logging
from datetime import datetime, UTC
from typing import Optional

from app.config.settings import settings
from app.services.core.repositories import get_session_repository
from app.services.exceptions import QuotaExceeded
from app.services.protocols import SessionStoreProtocol

logger = logging.getLogger(__name__)


def month_start(now: Optional[datetime] = None) -> datetime:
    """First instant of the current UTC month."""
    now = now or datetime.now(UTC)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class MonthlyMinutesEntitlement:
    """Quota = MONTHLY_MINUTES_LIMIT session minutes per calendar month (0 = unlimited)."""

    def __init__(
        self,
        store: Optional[SessionStoreProtocol] = None,
        monthly_limit: Optional[int] = None
    ):
        self._store = store
        self._monthly_limit = monthly_limit

    @property
    def monthly_limit(self) -> int:
        if self._monthly_limit is not None:
            return self._monthly_limit
        return settings.MONTHLY_MINUTES_LIMIT

    async def quota_available(self) -> bool:
        limit = self.monthly_limit
        if limit <= 0:
            return True

        store = self._store or get_session_repository()
        used = await store.minutes_used_since(month_start())
        available = used < limit
        if not available:
            logger.warning(f"[Entitlements] Monthly quota exhausted ({used:.1f}/{limit} minutes)")
        return available

    async def require_quota(self):
        """
        Raises:
            QuotaExceeded: no minutes left this month
        """
        if not await self.quota_available():
            raise QuotaExceeded("Monthly translation minutes exhausted")


# Singleton instance
entitlements = MonthlyMinutesEntitlement()


def get_entitlements() -> MonthlyMinutesEntitlement:
    """Get the default entitlement provider."""
    return entitlements
