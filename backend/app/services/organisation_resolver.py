"""OrganisationResolver: maps a Paddle payload onto an internal organisation."""

from dataclasses import dataclass
from enum import StrEnum

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.organisation import Organisation
from app.domain.paddle_payloads import ResolutionKeys, extract_resolution_keys

logger = structlog.get_logger(__name__)


class ResolutionSource(StrEnum):
    CUSTOM_DATA = "custom_data"
    SUBSCRIPTION = "subscription_id"
    CUSTOMER = "customer_id"
    NONE = "none"


@dataclass(frozen=True)
class Resolution:
    """Outcome of tenant resolution plus the keys the reconciler reuses."""

    organisation_id: str
    customer_id: str
    subscription_id: str
    source: ResolutionSource

    @property
    def found(self) -> bool:
        return bool(self.organisation_id)


class OrganisationResolver:
    """Resolves the owning organisation through a fixed precedence chain.

    1. ``custom_data.organisation_id`` set when the checkout was created
    2. organisation whose ``paddle_subscription_id`` matches
    3. organisation whose ``paddle_customer_id`` matches

    Lookup errors are logged and the chain moves on; a miss on every
    step yields an empty organisation_id, which callers treat as a no-op.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def resolve(self, event_type: str, data: dict) -> Resolution:
        keys = extract_resolution_keys(event_type, data)

        if keys.organisation_id:
            return self._result(keys, keys.organisation_id, ResolutionSource.CUSTOM_DATA)

        if keys.subscription_id:
            org_id = await self._lookup(Organisation.paddle_subscription_id, keys.subscription_id)
            if org_id:
                return self._result(keys, org_id, ResolutionSource.SUBSCRIPTION)

        if keys.customer_id:
            org_id = await self._lookup(Organisation.paddle_customer_id, keys.customer_id)
            if org_id:
                return self._result(keys, org_id, ResolutionSource.CUSTOMER)

        return self._result(keys, "", ResolutionSource.NONE)

    async def _lookup(self, column, value: str) -> str:
        """Return the first organisation id where ``column == value``, or ""."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Organisation.id).where(column == value).limit(1)
                )
                return result.scalar_one_or_none() or ""
        except SQLAlchemyError as e:
            logger.warning(
                "organisation_fallback_lookup_failed",
                lookup=column.key,
                value=value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ""

    @staticmethod
    def _result(keys: ResolutionKeys, organisation_id: str, source: ResolutionSource) -> Resolution:
        return Resolution(
            organisation_id=organisation_id,
            customer_id=keys.customer_id,
            subscription_id=keys.subscription_id,
            source=source,
        )
