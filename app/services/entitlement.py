# app/services/entitlement.py
# Entitlement resolver -- the single answer to "may this learner view / join /
# watch this live session right now?"
#
# Five independent sources can grant access, checked in a fixed order:
#   1. free          -> session is free-for-all or priced "free"
#   2. course        -> active enrollment in the session's course
#   3. purchase      -> active one-off purchase of this session
#   4. schedule      -> active enrollment in the schedule containing it
#   5. subscription  -> paid / subscription-only session + live-access plan
#                       that is active/trialing and not past its period end
#
# Storage only gathers EntitlementFacts; resolve_access() decides. Detail
# view, join, recording playback and listings all go through here.

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.exceptions import NotFound
from app.models.course import CourseEnrollment
from app.models.live_session import LiveSession
from app.models.purchase import ScheduleEnrollment, SessionPurchase
from app.models.subscription import Plan, Subscription

log = logging.getLogger(__name__)

# Subscription statuses that still count as "paying"
LIVE_SUBSCRIPTION_STATUSES = ("active", "trialing")

# Pricing types a subscription can unlock
SUBSCRIPTION_PRICING = ("paid", "subscription_only")


class AccessSource(str, enum.Enum):
    FREE = "free"
    COURSE_ENROLLMENT = "course_enrollment"
    DIRECT_PURCHASE = "direct_purchase"
    SCHEDULE_ENROLLMENT = "schedule_enrollment"
    SUBSCRIPTION = "subscription"


NO_ENTITLEMENT = "no_entitlement"
ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    reason: str

    @classmethod
    def grant(cls, source: AccessSource) -> "AccessDecision":
        return cls(granted=True, reason=source.value)

    @classmethod
    def deny(cls, reason: str = NO_ENTITLEMENT) -> "AccessDecision":
        return cls(granted=False, reason=reason)


@dataclass(frozen=True)
class EntitlementFacts:
    """
    Everything the resolver needs to know about one (learner, session) pair.
    subscription_period_ends holds the period end of every live-access
    subscription in an active/trialing state (None = open-ended).
    """
    is_free_for_all: bool = False
    pricing_type: str = "paid"
    has_active_course_enrollment: bool = False
    has_active_session_purchase: bool = False
    in_schedule: bool = False
    has_active_schedule_enrollment: bool = False
    subscription_period_ends: Tuple[Optional[datetime], ...] = ()


def _free(facts: EntitlementFacts, now: datetime) -> bool:
    return facts.is_free_for_all or facts.pricing_type == "free"


def _course(facts: EntitlementFacts, now: datetime) -> bool:
    return facts.has_active_course_enrollment


def _purchase(facts: EntitlementFacts, now: datetime) -> bool:
    return facts.has_active_session_purchase


def _schedule(facts: EntitlementFacts, now: datetime) -> bool:
    return facts.in_schedule and facts.has_active_schedule_enrollment


def _subscription(facts: EntitlementFacts, now: datetime) -> bool:
    if facts.pricing_type not in SUBSCRIPTION_PRICING:
        return False
    return any(end is None or end > now for end in facts.subscription_period_ends)


# ── Ordered source list ───────────────────────────────────────────────────────
SOURCES: Sequence[Tuple[AccessSource, Callable[[EntitlementFacts, datetime], bool]]] = (
    (AccessSource.FREE, _free),
    (AccessSource.COURSE_ENROLLMENT, _course),
    (AccessSource.DIRECT_PURCHASE, _purchase),
    (AccessSource.SCHEDULE_ENROLLMENT, _schedule),
    (AccessSource.SUBSCRIPTION, _subscription),
)


def resolve_access(facts: EntitlementFacts, now: datetime) -> AccessDecision:
    """First source that grants wins; otherwise no_entitlement."""
    for source, check in SOURCES:
        if check(facts, now):
            return AccessDecision.grant(source)
    return AccessDecision.deny()


class EntitlementResolver:
    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    # ── Fact loading ──────────────────────────────────────────────────────────

    def _subscription_period_ends(self, learner_id: UUID) -> Tuple[Optional[datetime], ...]:
        rows = self.db.execute(
            select(Subscription.current_period_end)
            .join(Plan, Plan.id == Subscription.plan_id)
            .where(
                Subscription.user_id == learner_id,
                Subscription.status.in_(LIVE_SUBSCRIPTION_STATUSES),
                Plan.grants_live_access.is_(True),
            )
        ).scalars().all()
        return tuple(rows)

    def load_facts(self, learner_id: UUID, session: LiveSession) -> EntitlementFacts:
        db = self.db

        course_enrolled = db.execute(
            select(CourseEnrollment.id).where(
                CourseEnrollment.learner_id == learner_id,
                CourseEnrollment.course_id == session.course_id,
                CourseEnrollment.status == "active",
            ).limit(1)
        ).first() is not None

        purchased = db.execute(
            select(SessionPurchase.id).where(
                SessionPurchase.learner_id == learner_id,
                SessionPurchase.session_id == session.id,
                SessionPurchase.status == "active",
            ).limit(1)
        ).first() is not None

        schedule_enrolled = False
        if session.schedule_id is not None:
            schedule_enrolled = db.execute(
                select(ScheduleEnrollment.id).where(
                    ScheduleEnrollment.learner_id == learner_id,
                    ScheduleEnrollment.schedule_id == session.schedule_id,
                    ScheduleEnrollment.status == "active",
                ).limit(1)
            ).first() is not None

        return EntitlementFacts(
            is_free_for_all=bool(session.is_free_for_all),
            pricing_type=session.pricing_type,
            has_active_course_enrollment=course_enrolled,
            has_active_session_purchase=purchased,
            in_schedule=session.schedule_id is not None,
            has_active_schedule_enrollment=schedule_enrolled,
            subscription_period_ends=self._subscription_period_ends(learner_id),
        )

    def get_session(self, session_id: UUID) -> LiveSession:
        session = self.db.get(LiveSession, session_id)
        if session is None or session.is_deleted:
            raise NotFound("LiveSession", session_id)
        return session

    # ── Decisions ─────────────────────────────────────────────────────────────

    def decide_for_session(self, learner_id: Optional[UUID], session: LiveSession) -> AccessDecision:
        """Resolve against an already-loaded session row."""
        if learner_id is None:
            return AccessDecision.deny(ANONYMOUS)
        decision = resolve_access(self.load_facts(learner_id, session), self.clock.now())
        if not decision.granted:
            log.info("Access denied: learner=%s session=%s reason=%s", learner_id, session.id, decision.reason)
        return decision

    def resolve(self, learner_id: Optional[UUID], session_id: UUID) -> AccessDecision:
        """
        Raises NotFound for missing or soft-deleted sessions, even for
        anonymous callers, so "doesn't exist" never looks like "not paid".
        """
        session = self.get_session(session_id)
        return self.decide_for_session(learner_id, session)

    def accessible_session_ids(self, learner_id: Optional[UUID], session_ids: Iterable[UUID]) -> Set[UUID]:
        """
        Subset of session_ids the learner may access. Unknown or deleted
        ids are silently dropped -- listings never 404.
        """
        ids: List[UUID] = list(session_ids)
        if not ids:
            return set()
        sessions = self.db.execute(
            select(LiveSession).where(LiveSession.id.in_(ids), LiveSession.is_deleted.is_(False))
        ).scalars().all()
        return {s.id for s in sessions if self.decide_for_session(learner_id, s).granted}
