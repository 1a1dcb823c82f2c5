"""Derived opportunity fields: dates, commitment, publish state, rewards, info view."""

import math
from datetime import datetime, time, timezone
from decimal import Decimal
from typing import Optional
from urllib.parse import urlparse
from uuid import UUID

from yoma_opportunity.models.lookup import OrganizationStatus, Status, TimeIntervalOption
from yoma_opportunity.models.opportunity import Opportunity, OpportunityInfo

MINUTES_PER_INTERVAL: dict[TimeIntervalOption, int] = {
    TimeIntervalOption.MINUTE: 1,
    TimeIntervalOption.HOUR: 60,
    TimeIntervalOption.DAY: 60 * 24,
    TimeIntervalOption.WEEK: 60 * 24 * 7,
    TimeIntervalOption.MONTH: 60 * 24 * 30,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)


def remove_time(value: datetime) -> datetime:
    """Start of the UTC day."""
    return datetime.combine(_as_utc(value).date(), time.min, tzinfo=timezone.utc)


def to_end_of_day(value: datetime) -> datetime:
    """Last microsecond of the UTC day."""
    return datetime.combine(_as_utc(value).date(), time.max, tzinfo=timezone.utc)


def ensure_https_scheme(url: Optional[str]) -> Optional[str]:
    """Prefix https:// to scheme-less URLs; blank becomes None."""
    url = (url or "").strip()
    if not url:
        return None
    if urlparse(url).scheme:
        return url
    return f"https://{url}"


def commitment_description(count: int, interval: TimeIntervalOption) -> str:
    """e.g. '1 Day', '3 Weeks'."""
    return f"{count} {interval.value}{'s' if count > 1 else ''}"


def time_interval_to_days(interval: TimeIntervalOption, count: int) -> int:
    if interval == TimeIntervalOption.MINUTE:
        return math.ceil(count / (60 * 24))
    if interval == TimeIntervalOption.HOUR:
        return math.ceil(count / 24)
    if interval == TimeIntervalOption.DAY:
        return count
    if interval == TimeIntervalOption.WEEK:
        return count * 7
    if interval == TimeIntervalOption.MONTH:
        return count * 30
    raise ValueError(f"Time interval '{interval}' not supported")


def time_interval_to_hours(interval: TimeIntervalOption, count: int) -> int:
    if interval == TimeIntervalOption.MINUTE:
        return math.ceil(count / 60)
    if interval == TimeIntervalOption.HOUR:
        return count
    if interval == TimeIntervalOption.DAY:
        return count * 24
    if interval == TimeIntervalOption.WEEK:
        return count * 24 * 7
    if interval == TimeIntervalOption.MONTH:
        return count * 24 * 30
    raise ValueError(f"Time interval '{interval}' not supported")


def is_published(status: Status, organization_status: OrganizationStatus) -> bool:
    return status == Status.ACTIVE and organization_status == OrganizationStatus.ACTIVE


def set_published(opp: Opportunity) -> None:
    opp.published = is_published(opp.status, opp.organization_status)


def published_or_expired(opp: Opportunity) -> tuple[bool, Optional[str]]:
    """Visible to anonymous callers: active organization and Active or Expired status."""
    if opp.organization_status != OrganizationStatus.ACTIVE:
        return False, f"Opportunity with id '{opp.id}' belongs to an inactive organization"
    statuses = (Status.ACTIVE, Status.EXPIRED)
    if opp.status not in statuses:
        expected = " / ".join(s.value for s in statuses)
        return False, f"Opportunity with id '{opp.id}' has an invalid status. Expected status(es): '{expected}'"
    return True, None


def completable(opp: Opportunity, now: Optional[datetime] = None) -> tuple[bool, Optional[str]]:
    """
    Can be sent for verification: Expired, or published and started; verification
    must also be enabled. Returns (completable, reason when not).
    """
    now = now or utcnow()
    published = is_published(opp.status, opp.organization_status)
    can_send = opp.status == Status.EXPIRED or (published and opp.date_start <= now)
    if can_send and opp.verification_enabled:
        return True, None

    reasons: list[str] = []
    if not published:
        reasons.append("it has not been published")
    if opp.status not in (Status.ACTIVE, Status.EXPIRED):
        reasons.append(f"its status is '{opp.status.value}'")
    if opp.date_start > now:
        reasons.append(f"it has not yet started (start date: {opp.date_start:%Y-%m-%d})")
    if not opp.verification_enabled:
        reasons.append("verification is not enabled")
    return False, f"Opportunity '{opp.title}' can not be completed, because {', '.join(reasons)}"


def reward_balance(pool: Optional[Decimal], cumulative: Optional[Decimal]) -> Optional[Decimal]:
    if pool is None:
        return None
    return pool - (cumulative or Decimal(0))


def set_balances(opp: Opportunity) -> None:
    opp.zlto_reward_balance = reward_balance(opp.zlto_reward_pool, opp.zlto_reward_cumulative)
    opp.yoma_reward_balance = reward_balance(opp.yoma_reward_pool, opp.yoma_reward_cumulative)


def allocate_reward(
    reward: Optional[Decimal],
    pool: Optional[Decimal],
    cumulative: Optional[Decimal],
    reduced: bool = False,
    depleted: bool = False,
) -> tuple[Optional[Decimal], bool, bool]:
    """
    Clamp a reward against one pool. Returns (reward, reduced, depleted); flags
    already raised by a previous pool stay raised.
    """
    if reward is None or pool is None:
        return reward, reduced, depleted
    remainder = pool - (cumulative or Decimal(0))
    allocated = max(min(remainder, reward), Decimal(0))
    return allocated, reduced or allocated < reward, depleted or remainder <= 0


def estimated_reward(
    reward: Optional[Decimal],
    organization_balance: Optional[Decimal],
    opportunity_balance: Optional[Decimal],
) -> Optional[Decimal]:
    """Reward a participant can still expect, given what is left in both pools."""
    if reward is None:
        return None
    if organization_balance is not None:
        reward = max(min(reward, organization_balance), Decimal(0))
        if reward == 0:
            return reward
    if opportunity_balance is not None:
        reward = max(min(reward, opportunity_balance), Decimal(0))
    return reward


def yoma_info_url(app_base_url: str, opportunity_id: UUID) -> str:
    return f"{app_base_url.strip().rstrip('/')}/opportunities/{opportunity_id}"


def to_opportunity_info(opp: Opportunity, app_base_url: str) -> OpportunityInfo:
    """Project the entity onto the API read model. Participant counts are set by the caller."""
    if not app_base_url or not app_base_url.strip():
        raise ValueError("app_base_url is required")
    is_completable, reason = completable(opp)
    participant_count = opp.participant_count or 0
    return OpportunityInfo(
        id=opp.id,
        title=opp.title,
        description=opp.description,
        type=opp.type,
        organization_id=opp.organization_id,
        organization_name=opp.organization_name,
        organization_logo_url=opp.organization_logo_url,
        summary=opp.summary,
        instructions=opp.instructions,
        url=opp.url,
        zlto_reward=estimated_reward(opp.zlto_reward, opp.organization_zlto_reward_balance, opp.zlto_reward_balance),
        zlto_reward_pool=opp.zlto_reward_pool,
        zlto_reward_cumulative=opp.zlto_reward_cumulative,
        zlto_reward_balance=opp.zlto_reward_balance,
        yoma_reward=estimated_reward(opp.yoma_reward, opp.organization_yoma_reward_balance, opp.yoma_reward_balance),
        yoma_reward_pool=opp.yoma_reward_pool,
        yoma_reward_cumulative=opp.yoma_reward_cumulative,
        yoma_reward_balance=opp.yoma_reward_balance,
        verification_enabled=opp.verification_enabled,
        verification_method=opp.verification_method,
        difficulty=opp.difficulty,
        commitment_interval=opp.commitment_interval,
        commitment_interval_count=opp.commitment_interval_count,
        commitment_interval_description=opp.commitment_interval_description,
        commitment_interval_hours=time_interval_to_hours(opp.commitment_interval, opp.commitment_interval_count),
        participant_limit=opp.participant_limit,
        participant_count_completed=participant_count,
        participant_limit_reached=opp.participant_limit is not None and participant_count >= opp.participant_limit,
        status=opp.status,
        keywords=opp.keywords,
        date_start=opp.date_start,
        date_end=opp.date_end,
        featured=opp.featured or False,
        engagement_type=opp.engagement_type,
        share_with_partners=opp.share_with_partners or False,
        hidden=opp.hidden or False,
        published=opp.published,
        is_completable=is_completable,
        non_completable_reason=reason,
        yoma_info_url=yoma_info_url(app_base_url, opp.id),
        categories=opp.categories or [],
        countries=opp.countries or [],
        languages=opp.languages or [],
        skills=opp.skills or [],
        verification_types=opp.verification_types or [],
    )
