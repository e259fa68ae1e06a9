from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from app.database import insert_or_get
from app.logging_config import get_logger
from app.models import Customer, Integration
from app.services.result import Result

logger = get_logger("customer_service")

AvatarFetcher = Callable[[str, str], Awaitable[Result[str]]]


@dataclass(frozen=True)
class ProfileHint:
    """Platform-specific identity extras pulled from the raw profile."""

    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    avatar_file_id: Optional[str] = None  # needs exchanging for a URL


@dataclass(frozen=True)
class PlatformUser:
    platform_user_id: str
    given_name: Optional[str] = None
    surname: Optional[str] = None
    profile: ProfileHint = field(default_factory=ProfileHint)


class CustomerStore:
    def __init__(self, kind: str):
        self.kind = kind

    def find(self, db: Session, integration_id: UUID, platform_user_id: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(
                Customer.kind == self.kind,
                Customer.integration_id == integration_id,
                Customer.platform_user_id == platform_user_id,
            )
            .first()
        )

    def create(
        self,
        db: Session,
        integration_id: UUID,
        platform_user: PlatformUser,
        phone: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> tuple[Customer, bool]:
        customer = Customer(
            kind=self.kind,
            integration_id=integration_id,
            platform_user_id=platform_user.platform_user_id,
            given_name=platform_user.given_name,
            surname=platform_user.surname,
            phone=phone,
            avatar_url=avatar_url,
            created_at=datetime.now(timezone.utc),
        )
        return insert_or_get(
            db, customer, lambda: self.find(db, integration_id, platform_user.platform_user_id)
        )


async def resolve_avatar(
    integration: Integration, profile: ProfileHint, avatar_fetcher: Optional[AvatarFetcher]
) -> Optional[str]:
    """Best-effort avatar URL. Never raises."""
    if profile.avatar_file_id and avatar_fetcher is not None:
        bot_token = integration.credential("telegram_bot_token")
        if not bot_token:
            logger.warning(
                "Avatar file id present but integration has no bot token",
                extra={"context": {"integration_id": str(integration.id)}},
            )
            return profile.avatar_url

        try:
            result = await avatar_fetcher(bot_token, profile.avatar_file_id)
        except httpx.HTTPError as e:
            result = Result.from_exception(e, "avatar_error")

        if not result.ok:
            logger.warning(
                "Avatar resolution failed, creating customer without avatar",
                extra={"context": {"integration_id": str(integration.id), "error": result.error}},
            )
        return result.unwrap_or(profile.avatar_url)

    return profile.avatar_url


async def resolve_customer(
    db: Session,
    store: CustomerStore,
    integration: Integration,
    platform_user: PlatformUser,
    avatar_fetcher: Optional[AvatarFetcher] = None,
) -> Customer:
    """Find customer by platform user id or create new one.

    Existing customers are returned unchanged so manually edited fields are
    never overwritten by later events.
    """
    customer = store.find(db, integration.id, platform_user.platform_user_id)
    if customer:
        return customer

    avatar_url = await resolve_avatar(integration, platform_user.profile, avatar_fetcher)
    customer, created = store.create(
        db,
        integration.id,
        platform_user,
        phone=platform_user.profile.phone,
        avatar_url=avatar_url,
    )
    if created:
        logger.info(
            "Customer created",
            extra={"context": {"customer_id": str(customer.id), "kind": store.kind}},
        )
    return customer
