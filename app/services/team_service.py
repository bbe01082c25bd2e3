"""
Team relationship checks used to authorize on-behalf bookings.

BookingService receives these as injected predicates so the booking core
never reads team tables directly.
"""
import uuid
from typing import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.team import TeamMember, TeamRole

# (booker_id, customer_id) -> bool
TeamPredicate = Callable[[uuid.UUID, uuid.UUID], Awaitable[bool]]


class TeamService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def can_book_on_behalf(self, booker_id: uuid.UUID, customer_id: uuid.UUID) -> bool:
        """Booker and customer share at least one team."""
        if booker_id == customer_id:
            return False

        booker_teams = select(TeamMember.team_id).where(TeamMember.member_id == booker_id)
        result = await self.db.execute(
            select(TeamMember.id)
            .where(
                TeamMember.member_id == customer_id,
                TeamMember.team_id.in_(booker_teams),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def is_team_admin_for_booking(self, booker_id: uuid.UUID, customer_id: uuid.UUID) -> bool:
        """Booker is an admin of a team that contains the customer."""
        admin_teams = select(TeamMember.team_id).where(
            TeamMember.member_id == booker_id,
            TeamMember.role == TeamRole.ADMIN.value,
        )
        result = await self.db.execute(
            select(TeamMember.id)
            .where(
                TeamMember.member_id == customer_id,
                TeamMember.team_id.in_(admin_teams),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None
