"""Operational alert rules and feed reconciliation.

Everything in this module is a pure function of its arguments: a
``FeedSnapshot`` of what one recipient can see, the recipient's previous
feed, and the evaluation instant. It can be re-run on any cadence.

Each rule yields zero or more ``NotificationCandidate`` objects whose ``key``
is a stable hash of the rule name and subject ids, so a later evaluation of
the same condition produces the same key.

Reconciliation against the previous feed:

1. keep a previous entry if its key is still produced, or if it was read;
2. materialise every produced key that was not kept as a new unread entry;
3. order the result by ``created_at`` descending;
4. report new ``high``/``critical`` entries as ``surfaced`` so the caller can
   push them exactly once.

A (rule, subject) pair therefore shows up unread once per transition from
false to true, and read entries stay as history until deleted explicitly.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from workload_ledger.core.config import Settings
from workload_ledger.models.entities import (
    AdminNotice,
    Initiative,
    InitiativeStatus,
    Milestone,
    NotificationPriority,
    NotificationType,
    Project,
    ProjectStatus,
    User,
    UserRole,
)
from workload_ledger.services.capacity_calculator import WorkloadSnapshot

ALERT_PRIORITIES = {NotificationPriority.HIGH, NotificationPriority.CRITICAL}
WORKLOAD_RULE_ROLES = {UserRole.EMPLOYEE, UserRole.MANAGER}
RESOURCING_RULE_ROLES = {UserRole.PROGRAM_MANAGER, UserRole.MANAGER}

RULE_OVERDUE_MILESTONE = "overdue-milestone"
RULE_UPCOMING_MILESTONE = "upcoming-milestone"
RULE_WORKLOAD_EXCEEDED = "workload-exceeded"
RULE_OVER_BEYOND_NEAR_CAP = "over-beyond-near-cap"
RULE_OVER_BEYOND_EXCEEDED = "over-beyond-exceeded"
RULE_UNRESOURCED_PROJECT = "unresourced-project"
RULE_BUDGET_ALERT = "budget-alert"
RULE_BUDGET_EXCEEDED = "budget-exceeded"
RULE_INITIATIVE_DEADLINE = "initiative-deadline"
RULE_ADMIN_NOTICE = "admin-notice"


def notification_key(rule: str, *subject_ids: object) -> str:
    """Stable identity of a (rule, subject) pair."""

    raw = ":".join([rule, *(str(subject) for subject in subject_ids)])
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class RuleThresholds:
    upcoming_window: timedelta = timedelta(days=7)
    workload_limit: Decimal = Decimal("100")
    over_beyond_warning: Decimal = Decimal("15")
    budget_alert_ratio: Decimal = Decimal("0.8")

    @classmethod
    def from_settings(cls, settings: Settings) -> RuleThresholds:
        return cls(
            upcoming_window=timedelta(days=settings.upcoming_deadline_days),
            workload_limit=Decimal(settings.workload_alert_threshold),
            over_beyond_warning=Decimal(settings.over_beyond_warning_threshold),
            budget_alert_ratio=Decimal(str(settings.budget_alert_ratio)),
        )


@dataclass(frozen=True, slots=True)
class NotificationCandidate:
    key: str
    rule: str
    type: NotificationType
    priority: NotificationPriority
    title: str
    message: str
    entity_type: str
    entity_id: str
    # Source-provided timestamp; rules leave it unset and the entry is
    # stamped with the evaluation time when first materialised.
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class FeedNotification:
    key: str
    rule: str
    type: NotificationType
    priority: NotificationPriority
    title: str
    message: str
    entity_type: str
    entity_id: str
    read: bool
    created_at: datetime

    @property
    def is_alert(self) -> bool:
        return self.priority in ALERT_PRIORITIES

    def mark_read(self) -> FeedNotification:
        return replace(self, read=True)


@dataclass(slots=True)
class FeedSnapshot:
    """Point-in-time view of everything one recipient's rules look at."""

    recipient: User
    projects: list[Project] = field(default_factory=list)
    milestones_by_project: dict[UUID, list[Milestone]] = field(default_factory=dict)
    assignment_counts: dict[UUID, int] = field(default_factory=dict)
    initiatives: list[Initiative] = field(default_factory=list)
    workload: WorkloadSnapshot | None = None
    admin_notices: list[AdminNotice] = field(default_factory=list)


@dataclass(slots=True)
class FeedEvaluation:
    notifications: list[FeedNotification]
    created: list[FeedNotification]
    dropped_keys: list[str]

    @property
    def surfaced(self) -> list[FeedNotification]:
        return [row for row in self.created if row.is_alert]


Rule = Callable[[FeedSnapshot, datetime, RuleThresholds], Iterable[NotificationCandidate]]


def as_naive_utc(value: datetime) -> datetime:
    """Feed timestamps are naive UTC; aware values from the database are converted."""

    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _due_at(value: date) -> datetime:
    return datetime.combine(value, time.min)


def _is_upcoming(due: date, now: datetime, window: timedelta) -> bool:
    due_at = _due_at(due)
    return now < due_at <= now + window


# ---------- Rules ----------
def overdue_milestones(
    snapshot: FeedSnapshot, now: datetime, thresholds: RuleThresholds
) -> Iterator[NotificationCandidate]:
    for project in snapshot.projects:
        for milestone in snapshot.milestones_by_project.get(project.id, []):
            if milestone.completed or not _due_at(milestone.due_date) < now:
                continue
            yield NotificationCandidate(
                key=notification_key(RULE_OVERDUE_MILESTONE, project.id, milestone.id),
                rule=RULE_OVERDUE_MILESTONE,
                type=NotificationType.DEADLINE,
                priority=NotificationPriority.HIGH,
                title="Overdue Milestone",
                message=f'"{milestone.title}" in project "{project.title}" is overdue',
                entity_type="project",
                entity_id=str(project.id),
            )


def upcoming_milestones(
    snapshot: FeedSnapshot, now: datetime, thresholds: RuleThresholds
) -> Iterator[NotificationCandidate]:
    for project in snapshot.projects:
        for milestone in snapshot.milestones_by_project.get(project.id, []):
            if milestone.completed or not _is_upcoming(milestone.due_date, now, thresholds.upcoming_window):
                continue
            yield NotificationCandidate(
                key=notification_key(RULE_UPCOMING_MILESTONE, project.id, milestone.id),
                rule=RULE_UPCOMING_MILESTONE,
                type=NotificationType.DEADLINE,
                priority=NotificationPriority.MEDIUM,
                title="Upcoming Deadline",
                message=(
                    f'"{milestone.title}" in project "{project.title}" is due on '
                    f"{milestone.due_date.isoformat()}"
                ),
                entity_type="project",
                entity_id=str(project.id),
            )


def workload_alerts(
    snapshot: FeedSnapshot, now: datetime, thresholds: RuleThresholds
) -> Iterator[NotificationCandidate]:
    recipient = snapshot.recipient
    workload = snapshot.workload
    if workload is None or recipient.role not in WORKLOAD_RULE_ROLES:
        return

    if workload.total_workload > thresholds.workload_limit:
        yield NotificationCandidate(
            key=notification_key(RULE_WORKLOAD_EXCEEDED, recipient.id),
            rule=RULE_WORKLOAD_EXCEEDED,
            type=NotificationType.WORKLOAD,
            priority=NotificationPriority.CRITICAL,
            title="Workload Exceeded",
            message=(
                f"Your total workload is {workload.total_workload:.1f}%, "
                "which exceeds the recommended limit"
            ),
            entity_type="user",
            entity_id=str(recipient.id),
        )

    # The secondary pool is judged against its own cap, never the project pool.
    if workload.over_beyond_workload > workload.over_beyond_cap:
        yield NotificationCandidate(
            key=notification_key(RULE_OVER_BEYOND_EXCEEDED, recipient.id),
            rule=RULE_OVER_BEYOND_EXCEEDED,
            type=NotificationType.WORKLOAD,
            priority=NotificationPriority.CRITICAL,
            title="Over & Beyond Capacity Exceeded",
            message=(
                f"Your Over & Beyond workload is {workload.over_beyond_workload:.1f}%, "
                f"above your {workload.over_beyond_cap:.0f}% limit"
            ),
            entity_type="user",
            entity_id=str(recipient.id),
        )
    elif workload.over_beyond_workload > thresholds.over_beyond_warning:
        yield NotificationCandidate(
            key=notification_key(RULE_OVER_BEYOND_NEAR_CAP, recipient.id),
            rule=RULE_OVER_BEYOND_NEAR_CAP,
            type=NotificationType.WORKLOAD,
            priority=NotificationPriority.MEDIUM,
            title="High Over & Beyond Workload",
            message=(
                f"Your Over & Beyond workload is {workload.over_beyond_workload:.1f}%, "
                f"approaching the {workload.over_beyond_cap:.0f}% limit"
            ),
            entity_type="user",
            entity_id=str(recipient.id),
        )


def unresourced_projects(
    snapshot: FeedSnapshot, now: datetime, thresholds: RuleThresholds
) -> Iterator[NotificationCandidate]:
    recipient = snapshot.recipient
    if recipient.role not in RESOURCING_RULE_ROLES:
        return
    for project in snapshot.projects:
        if project.manager_id != recipient.id or project.status is not ProjectStatus.ACTIVE:
            continue
        if snapshot.assignment_counts.get(project.id, 0) > 0:
            continue
        yield NotificationCandidate(
            key=notification_key(RULE_UNRESOURCED_PROJECT, project.id),
            rule=RULE_UNRESOURCED_PROJECT,
            type=NotificationType.ASSIGNMENT,
            priority=NotificationPriority.HIGH,
            title="Project Needs Team",
            message=f'Active project "{project.title}" has no assigned team members',
            entity_type="project",
            entity_id=str(project.id),
        )


def budget_alerts(
    snapshot: FeedSnapshot, now: datetime, thresholds: RuleThresholds
) -> Iterator[NotificationCandidate]:
    for project in snapshot.projects:
        if not (project.budget_amount and project.actual_hours and project.estimated_hours):
            continue
        ratio = Decimal(project.actual_hours) / Decimal(project.estimated_hours)
        if ratio <= thresholds.budget_alert_ratio:
            continue

        exceeded = ratio > 1
        rule = RULE_BUDGET_EXCEEDED if exceeded else RULE_BUDGET_ALERT
        yield NotificationCandidate(
            key=notification_key(rule, project.id),
            rule=rule,
            type=NotificationType.BUDGET,
            priority=NotificationPriority.CRITICAL if exceeded else NotificationPriority.HIGH,
            title="Budget Exceeded" if exceeded else "Budget Alert",
            message=f'Project "{project.title}" has used {ratio * 100:.1f}% of estimated hours',
            entity_type="project",
            entity_id=str(project.id),
        )


def initiative_deadlines(
    snapshot: FeedSnapshot, now: datetime, thresholds: RuleThresholds
) -> Iterator[NotificationCandidate]:
    for initiative in snapshot.initiatives:
        if initiative.due_date is None or initiative.status is InitiativeStatus.COMPLETED:
            continue
        if not _is_upcoming(initiative.due_date, now, thresholds.upcoming_window):
            continue
        yield NotificationCandidate(
            key=notification_key(RULE_INITIATIVE_DEADLINE, initiative.id),
            rule=RULE_INITIATIVE_DEADLINE,
            type=NotificationType.DEADLINE,
            priority=NotificationPriority.MEDIUM,
            title="Initiative Deadline Approaching",
            message=f'Initiative "{initiative.title}" is due on {initiative.due_date.isoformat()}',
            entity_type="initiative",
            entity_id=str(initiative.id),
        )


def admin_notices(
    snapshot: FeedSnapshot, now: datetime, thresholds: RuleThresholds
) -> Iterator[NotificationCandidate]:
    for notice in snapshot.admin_notices:
        yield NotificationCandidate(
            key=notification_key(RULE_ADMIN_NOTICE, notice.id),
            rule=RULE_ADMIN_NOTICE,
            type=NotificationType.STATUS,
            priority=NotificationPriority.HIGH,
            title=notice.title,
            message=notice.message,
            entity_type="user",
            entity_id=str(notice.subject_user_id) if notice.subject_user_id else "",
            created_at=as_naive_utc(notice.created_at),
        )


OPERATIONAL_RULES: tuple[Rule, ...] = (
    overdue_milestones,
    workload_alerts,
    upcoming_milestones,
    initiative_deadlines,
    unresourced_projects,
    budget_alerts,
)
ADMINISTRATIVE_RULES: tuple[Rule, ...] = (admin_notices,)


def collect_candidates(
    snapshot: FeedSnapshot,
    *,
    now: datetime,
    thresholds: RuleThresholds,
) -> list[NotificationCandidate]:
    """Run the rule set that applies to the recipient's role."""

    rules = ADMINISTRATIVE_RULES if snapshot.recipient.role is UserRole.ADMIN else OPERATIONAL_RULES
    candidates: list[NotificationCandidate] = []
    for rule in rules:
        candidates.extend(rule(snapshot, now, thresholds))
    return candidates


def _sort_feed(rows: Iterable[FeedNotification]) -> list[FeedNotification]:
    return sorted(rows, key=lambda row: (row.created_at, row.key), reverse=True)


def reconcile(
    previous: Sequence[FeedNotification],
    candidates: Sequence[NotificationCandidate],
    *,
    now: datetime,
) -> FeedEvaluation:
    produced: dict[str, NotificationCandidate] = {}
    for candidate in candidates:
        produced.setdefault(candidate.key, candidate)

    kept: dict[str, FeedNotification] = {}
    dropped: list[str] = []
    for row in previous:
        if row.key in kept:
            continue
        if row.key in produced or row.read:
            kept[row.key] = row
        else:
            dropped.append(row.key)

    created = [
        FeedNotification(
            key=candidate.key,
            rule=candidate.rule,
            type=candidate.type,
            priority=candidate.priority,
            title=candidate.title,
            message=candidate.message,
            entity_type=candidate.entity_type,
            entity_id=candidate.entity_id,
            read=False,
            created_at=candidate.created_at or now,
        )
        for key, candidate in produced.items()
        if key not in kept
    ]

    return FeedEvaluation(
        notifications=_sort_feed([*kept.values(), *created]),
        created=created,
        dropped_keys=dropped,
    )


def evaluate_notifications(
    snapshot: FeedSnapshot,
    previous: Sequence[FeedNotification],
    *,
    now: datetime,
    thresholds: RuleThresholds | None = None,
) -> FeedEvaluation:
    """Evaluate all rules for one recipient and reconcile with ``previous``."""

    candidates = collect_candidates(snapshot, now=now, thresholds=thresholds or RuleThresholds())
    return reconcile(previous, candidates, now=now)
