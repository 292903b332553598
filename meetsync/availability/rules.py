"""
Tool: Weekly Rules
Purpose: Recurring weekly availability windows and ad-hoc blocked times

Rule semantics:
    - No rules at all: available any time.
    - Otherwise a candidate is available only if some rule for the candidate's
      weekday contains its whole wall-clock range. Same-day rules are OR'd.

Usage:
    from meetsync.availability.rules import is_within_rules, load_rule_set

    rules = load_rule_set(user_id)
    ok = is_within_rules(start.astimezone(tz), end.astimezone(tz), rules)
"""

from collections.abc import Iterable
from datetime import datetime

from meetsync import get_connection
from meetsync.config_models import get_config
from meetsync.errors import NotAuthorized, NotFound
from meetsync.logging_config import get_logger
from meetsync.models import (
    AvailabilityRule,
    BlockedTime,
    RuleSet,
    ensure_aware,
    load_zone,
    to_storage,
)

logger = get_logger(__name__)

MINUTES_PER_DAY = 24 * 60

# Returned by availability_range() when no rules are configured
DEFAULT_RANGE = (8, 18)


def _minutes_of_day(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute


def is_within_rules(
    candidate_start: datetime,
    candidate_end: datetime,
    rules: RuleSet | Iterable[AvailabilityRule] | None,
) -> bool:
    """
    Check whether [candidate_start, candidate_end) sits inside the weekly rules.

    Weekday and minutes-of-day are read from the candidate's own wall clock,
    so callers localize the candidate into the rule owner's timezone first.
    """
    rule_list = list(rules) if rules is not None else []
    if not rule_list:
        return True

    day_rules = [r for r in rule_list if r.day_of_week == candidate_start.weekday()]
    if not day_rules:
        return False

    if candidate_start.tzinfo is not None and candidate_end.tzinfo is not None:
        candidate_end = candidate_end.astimezone(candidate_start.tzinfo)

    start_minutes = _minutes_of_day(candidate_start)
    # A candidate running past midnight gets end minutes beyond 1440 and can
    # never fit a same-day rule.
    days_spanned = (candidate_end.date() - candidate_start.date()).days
    end_minutes = days_spanned * MINUTES_PER_DAY + _minutes_of_day(candidate_end)

    return any(rule.covers(start_minutes, end_minutes) for rule in day_rules)


# =============================================================================
# Rule storage
# =============================================================================


def _build_rule(
    user_id: str,
    day_of_week: int,
    start_time: str,
    end_time: str,
    timezone: str | None,
) -> AvailabilityRule:
    timezone = timezone or get_config().users.default_timezone
    load_zone(timezone)
    return AvailabilityRule(
        user_id=user_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        timezone=timezone,
    )


def _insert_rule(conn, rule: AvailabilityRule) -> None:
    conn.execute(
        """
        INSERT INTO availability_rules (id, user_id, day_of_week, start_time, end_time, timezone)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            rule.id,
            rule.user_id,
            rule.day_of_week,
            rule.start_time.strftime("%H:%M"),
            rule.end_time.strftime("%H:%M"),
            rule.timezone,
        ),
    )


def create_rule(
    user_id: str,
    day_of_week: int,
    start_time: str,
    end_time: str,
    timezone: str | None = None,
) -> AvailabilityRule:
    """
    Add a weekly rule.

    Args:
        user_id: Rule owner
        day_of_week: 0 = Monday ... 6 = Sunday
        start_time: 'HH:MM'
        end_time: 'HH:MM', strictly after start_time
        timezone: Timezone tag (defaults to the configured default timezone)

    Raises:
        InvalidRequest: Bad weekday or start >= end
        InvalidTimezone: Unknown timezone tag
    """
    rule = _build_rule(user_id, day_of_week, start_time, end_time, timezone)

    conn = get_connection()
    try:
        _insert_rule(conn, rule)
        conn.commit()
    finally:
        conn.close()

    return rule


def replace_rules(
    user_id: str,
    entries: Iterable[tuple[int, str, str, str | None]],
) -> list[AvailabilityRule]:
    """
    Swap the user's whole week for a new set of rules.

    Each entry is (day_of_week, start_time, end_time, timezone). Every rule is
    validated before anything is written, and the delete and inserts share one
    transaction, so a rejected entry leaves the stored rules untouched.
    """
    rules = [_build_rule(user_id, *entry) for entry in entries]

    conn = get_connection()
    try:
        cursor = conn.execute("DELETE FROM availability_rules WHERE user_id = ?", (user_id,))
        removed = cursor.rowcount
        for rule in rules:
            _insert_rule(conn, rule)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    logger.info("rules_replaced", user_id=user_id, removed=removed, added=len(rules))
    return rules


def create_default_rules(user_id: str, timezone: str) -> list[AvailabilityRule]:
    """Bootstrap the configured default week (Mon-Fri 09:00-17:00 unless overridden)."""
    users_config = get_config().users
    return [
        create_rule(
            user_id,
            day,
            users_config.default_rule_start,
            users_config.default_rule_end,
            timezone,
        )
        for day in users_config.default_rule_days
    ]


def list_rules(user_id: str) -> list[AvailabilityRule]:
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM availability_rules WHERE user_id = ? ORDER BY day_of_week, start_time",
            (user_id,),
        ).fetchall()
    finally:
        conn.close()
    return [AvailabilityRule.from_row(r) for r in rows]


def load_rule_set(user_id: str) -> RuleSet | None:
    """The user's rules, or None when none are configured."""
    rules = list_rules(user_id)
    return RuleSet(rules) if rules else None


def delete_rule(rule_id: str, user_id: str) -> None:
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT user_id FROM availability_rules WHERE id = ?", (rule_id,)
        ).fetchone()
        if row is None:
            raise NotFound(f"Availability rule not found: {rule_id}")
        if row["user_id"] != user_id:
            raise NotAuthorized("Only the owner can delete an availability rule")
        conn.execute("DELETE FROM availability_rules WHERE id = ?", (rule_id,))
        conn.commit()
    finally:
        conn.close()


def availability_range(user_id: str) -> tuple[int, int]:
    """Earliest rule start hour and latest rule end hour, for calendar display."""
    rules = list_rules(user_id)
    if not rules:
        return DEFAULT_RANGE
    return (
        min(r.start_time.hour for r in rules),
        max(r.end_time.hour for r in rules),
    )


# =============================================================================
# Blocked times
# =============================================================================


def create_blocked_time(
    user_id: str,
    start: datetime,
    end: datetime,
    reason: str | None = None,
) -> BlockedTime:
    blocked = BlockedTime(user_id=user_id, start=start, end=end, reason=reason)

    conn = get_connection()
    try:
        conn.execute(
            "INSERT INTO blocked_times (id, user_id, start_time, end_time, reason) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                blocked.id,
                blocked.user_id,
                to_storage(blocked.start),
                to_storage(blocked.end),
                blocked.reason,
            ),
        )
        conn.commit()
    finally:
        conn.close()

    return blocked


def list_blocked_times(user_id: str) -> list[BlockedTime]:
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM blocked_times WHERE user_id = ? ORDER BY start_time",
            (user_id,),
        ).fetchall()
    finally:
        conn.close()
    return [BlockedTime.from_row(r) for r in rows]


def blocked_in_range(user_id: str, start: datetime, end: datetime) -> list[BlockedTime]:
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM blocked_times WHERE user_id = ? AND start_time < ? AND end_time > ? "
            "ORDER BY start_time",
            (user_id, to_storage(ensure_aware(end)), to_storage(ensure_aware(start))),
        ).fetchall()
    finally:
        conn.close()
    return [BlockedTime.from_row(r) for r in rows]


def delete_blocked_time(blocked_id: str, user_id: str) -> None:
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT user_id FROM blocked_times WHERE id = ?", (blocked_id,)
        ).fetchone()
        if row is None:
            raise NotFound(f"Blocked time not found: {blocked_id}")
        if row["user_id"] != user_id:
            raise NotAuthorized("Only the owner can delete a blocked time")
        conn.execute("DELETE FROM blocked_times WHERE id = ?", (blocked_id,))
        conn.commit()
    finally:
        conn.close()
