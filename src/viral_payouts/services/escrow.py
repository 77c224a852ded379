"""Campaign escrow: locking brand funds and releasing them to creators."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from ..models import (
    Campaign,
    CampaignMetrics,
    CampaignStatus,
    CreatorProfile,
    Escrow,
    EscrowStatus,
    TransactionType,
    User,
    UserRole,
    WalletType,
    utcnow,
)
from .audit import record_admin_action
from .wallets import WalletService

logger = logging.getLogger(__name__)

CLOSED_ESCROW_STATUSES = (EscrowStatus.FULLY_RELEASED, EscrowStatus.REFUNDED)


@dataclass(slots=True)
class Release:
    creator_id: int
    amount: int
    participation_id: int | None = None


class EscrowService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.wallets = WalletService(session)

    async def _get(self, escrow_id: int) -> Escrow:
        escrow = await self.session.get(Escrow, escrow_id)
        if not escrow:
            raise NotFoundError("Escrow not found")
        return escrow

    async def _campaign(self, campaign_id: int) -> Campaign:
        campaign = await self.session.get(Campaign, campaign_id)
        if not campaign:
            raise NotFoundError("Campaign not found")
        return campaign

    async def for_campaign(self, campaign_id: int) -> Escrow | None:
        stmt = select(Escrow).where(Escrow.campaign_id == campaign_id)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def lock_funds(self, user: User, campaign_id: int, amount: int) -> Escrow:
        if amount <= 0:
            raise BadRequestError("Amount must be positive")
        campaign = await self._campaign(campaign_id)
        if campaign.brand_id != user.id:
            raise NotFoundError("Campaign not found")
        if campaign.status not in (CampaignStatus.DRAFT, CampaignStatus.FUNDING):
            raise BadRequestError("Campaign must be in draft or funding status")
        if await self.for_campaign(campaign.id):
            raise ConflictError("Escrow already exists for this campaign")

        wallet = await self.wallets.require(user.id, WalletType.BRAND)
        if wallet.available_balance < amount:
            raise BadRequestError("Insufficient wallet balance")

        escrow = Escrow(
            campaign_id=campaign.id,
            brand_wallet_id=wallet.id,
            total_amount=amount,
            released_amount=0,
            commission_amount=int(round(amount * campaign.platform_commission_rate)),
            status=EscrowStatus.LOCKED,
        )
        self.session.add(escrow)
        await self.session.flush()

        wallet.escrow_balance += amount
        await self.wallets.post(
            wallet,
            amount=-amount,
            type=TransactionType.ESCROW_LOCK,
            description=f"Escrow locked for campaign: {campaign.name}",
            reference_id=str(escrow.id),
            reference_type="escrow",
            from_user_id=user.id,
        )
        campaign.status = CampaignStatus.FUNDING
        await self.session.flush()
        logger.info("Locked %s for campaign %s (escrow %s)", amount, campaign.id, escrow.id)
        return escrow

    async def get_escrow(self, user: User, campaign_id: int) -> Escrow:
        campaign = await self._campaign(campaign_id)
        if campaign.brand_id != user.id and not user.is_admin:
            raise ForbiddenError()
        escrow = await self.for_campaign(campaign.id)
        if not escrow:
            raise NotFoundError("Escrow not found")
        return escrow

    async def release(self, escrow_id: int, releases: Sequence[Release], *, admin_id: int) -> Escrow:
        escrow = await self._get(escrow_id)
        if escrow.status in CLOSED_ESCROW_STATUSES:
            raise BadRequestError("Escrow is already closed")
        if not releases:
            raise BadRequestError("Nothing to release")
        if any(item.amount <= 0 for item in releases):
            raise BadRequestError("Release amounts must be positive")
        total = sum(item.amount for item in releases)
        if total > escrow.remaining_amount:
            raise BadRequestError("Release amount exceeds remaining escrow")

        campaign = await self._campaign(escrow.campaign_id)
        for item in releases:
            creator = await self.session.get(User, item.creator_id)
            if not creator or creator.role != UserRole.CREATOR:
                raise NotFoundError(f"Creator {item.creator_id} not found")
            wallet = await self.wallets.get_or_create(creator.id, WalletType.CREATOR)
            wallet.lifetime_earnings += item.amount
            await self.wallets.post(
                wallet,
                amount=item.amount,
                type=TransactionType.ESCROW_RELEASE,
                description=f"Earnings from campaign: {campaign.name}",
                reference_id=str(escrow.id),
                reference_type="escrow",
                to_user_id=creator.id,
                participation_id=item.participation_id,
            )

            metrics = (
                await self.session.execute(
                    select(CampaignMetrics).where(
                        CampaignMetrics.campaign_id == campaign.id,
                        CampaignMetrics.creator_id == creator.id,
                    )
                )
            ).scalar_one_or_none()
            if metrics:
                metrics.paid_amount += item.amount

            profile = (
                await self.session.execute(
                    select(CreatorProfile).where(CreatorProfile.user_id == creator.id)
                )
            ).scalar_one_or_none()
            if profile:
                profile.total_earnings += item.amount

        escrow.released_amount += total
        if escrow.remaining_amount == 0:
            escrow.status = EscrowStatus.FULLY_RELEASED
            escrow.released_at = utcnow()
        else:
            escrow.status = EscrowStatus.PARTIALLY_RELEASED
        campaign.spent_budget += total

        brand_wallet = await self.wallets.get(campaign.brand_id)
        if brand_wallet:
            brand_wallet.escrow_balance -= total

        await record_admin_action(
            self.session, admin_id=admin_id, action="release_escrow",
            target_table="escrows", target_id=escrow.id, delta=total,
        )
        logger.info("Released %s from escrow %s to %s creators", total, escrow.id, len(releases))
        return escrow

    async def refund(self, escrow_id: int, *, admin_id: int, reason: str | None = None) -> Escrow:
        escrow = await self._get(escrow_id)
        if escrow.status in CLOSED_ESCROW_STATUSES:
            raise BadRequestError("Escrow is already closed")
        remaining = escrow.remaining_amount
        if remaining <= 0:
            raise BadRequestError("No funds to refund")

        campaign = await self._campaign(escrow.campaign_id)
        brand_wallet = await self.wallets.require(campaign.brand_id, WalletType.BRAND)
        brand_wallet.escrow_balance -= remaining
        await self.wallets.post(
            brand_wallet,
            amount=remaining,
            type=TransactionType.REFUND,
            description=f"Escrow refund for campaign: {campaign.name}",
            reference_id=str(escrow.id),
            reference_type="escrow",
            to_user_id=campaign.brand_id,
        )
        escrow.status = EscrowStatus.REFUNDED
        escrow.released_at = utcnow()
        campaign.status = CampaignStatus.CANCELLED

        await record_admin_action(
            self.session, admin_id=admin_id, action="refund_escrow",
            target_table="escrows", target_id=escrow.id, delta=remaining, reason=reason,
        )
        logger.info("Refunded %s from escrow %s", remaining, escrow.id)
        return escrow


__all__ = ["CLOSED_ESCROW_STATUSES", "EscrowService", "Release"]
