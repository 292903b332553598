"""Tests for meetsync/availability/rules.py

Covers the weekly rule evaluator and rule / blocked-time storage:
- No rules at all means unrestricted
- A day without rules is unavailable once any rule exists
- Same-day rules are OR'd, candidates must fit one rule entirely
- Ownership checks on deletion
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from meetsync.availability import rules as rules_mod
from meetsync.errors import InvalidRequest, InvalidTimezone, NotAuthorized, NotFound
from meetsync.models import AvailabilityRule, RuleSet


def at(hour: int, minute: int = 0, day: int = 2) -> datetime:
    """Wall-clock instant in UTC in the week of Monday 2 November 2026."""
    return datetime(2026, 11, day, hour, minute, tzinfo=timezone.utc)


def rule(day: int, start: str, end: str) -> AvailabilityRule:
    return AvailabilityRule(user_id="u1", day_of_week=day, start_time=start, end_time=end)


# ─────────────────────────────────────────────────────────────────────────────
# Rule Evaluation Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestIsWithinRules:
    """Tests for is_within_rules."""

    def test_monday_rule_accepts_contained_candidate(self):
        """A Monday 10:00-11:00 candidate fits a Monday 09:00-17:00 rule."""
        monday_rules = RuleSet([rule(0, "09:00", "17:00")])
        assert rules_mod.is_within_rules(at(10), at(11), monday_rules) is True

    def test_monday_rule_rejects_candidate_past_rule_end(self):
        """16:30-17:30 runs past the 17:00 rule end."""
        monday_rules = RuleSet([rule(0, "09:00", "17:00")])
        assert rules_mod.is_within_rules(at(16, 30), at(17, 30), monday_rules) is False

    def test_none_means_unrestricted(self):
        assert rules_mod.is_within_rules(at(3), at(4), None) is True

    def test_empty_rule_set_means_unrestricted(self):
        assert rules_mod.is_within_rules(at(3), at(4), RuleSet([])) is True
        assert rules_mod.is_within_rules(at(3), at(4), []) is True

    def test_day_without_rules_is_unavailable(self):
        """Tuesday has no rule, so nothing on Tuesday fits."""
        monday_rules = RuleSet([rule(0, "09:00", "17:00")])
        assert rules_mod.is_within_rules(at(10, day=3), at(11, day=3), monday_rules) is False

    def test_exact_rule_bounds_are_accepted(self):
        monday_rules = RuleSet([rule(0, "09:00", "17:00")])
        assert rules_mod.is_within_rules(at(9), at(17), monday_rules) is True

    def test_partial_overlap_is_not_enough(self):
        monday_rules = RuleSet([rule(0, "09:00", "17:00")])
        assert rules_mod.is_within_rules(at(8, 30), at(9, 30), monday_rules) is False

    def test_same_day_rules_are_unioned(self):
        split_day = RuleSet([rule(0, "09:00", "12:00"), rule(0, "13:00", "17:00")])

        assert rules_mod.is_within_rules(at(11), at(12), split_day) is True
        assert rules_mod.is_within_rules(at(13), at(14), split_day) is True

    def test_candidate_spanning_gap_between_rules_is_rejected(self):
        """Union is per rule: a candidate must fit inside one rule."""
        split_day = RuleSet([rule(0, "09:00", "12:00"), rule(0, "13:00", "17:00")])
        assert rules_mod.is_within_rules(at(11, 30), at(13, 30), split_day) is False

    def test_candidate_crossing_midnight_is_rejected(self):
        late_monday = RuleSet([rule(0, "20:00", "23:59")])
        assert rules_mod.is_within_rules(at(23, 30), at(0, 30, day=3), late_monday) is False

    def test_weekday_read_from_candidate_wall_clock(self):
        """02:00 UTC Tuesday is still Monday evening in New York."""
        ny = ZoneInfo("America/New_York")
        monday_evening = RuleSet([rule(0, "20:00", "23:00")])
        start = at(2, day=3).astimezone(ny)
        end = start + timedelta(hours=1)

        assert start.weekday() == 0
        assert rules_mod.is_within_rules(start, end, monday_evening) is True


class TestAvailabilityRuleModel:
    """Validation in the AvailabilityRule dataclass."""

    def test_start_must_precede_end(self):
        with pytest.raises(InvalidRequest):
            rule(0, "17:00", "09:00")

    def test_equal_start_and_end_rejected(self):
        with pytest.raises(InvalidRequest):
            rule(0, "09:00", "09:00")

    def test_weekday_out_of_range(self):
        with pytest.raises(InvalidRequest):
            rule(7, "09:00", "17:00")

    def test_bad_clock_string(self):
        with pytest.raises(InvalidRequest):
            rule(0, "nine", "17:00")


# ─────────────────────────────────────────────────────────────────────────────
# Rule Storage Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestRuleStorage:
    """Tests for rule CRUD."""

    def test_create_and_list(self, ana):
        rules_mod.create_rule(ana.id, 2, "13:00", "15:00", "UTC")
        rules_mod.create_rule(ana.id, 0, "09:00", "12:00", "UTC")

        stored = rules_mod.list_rules(ana.id)

        assert [(r.day_of_week, r.start_time.strftime("%H:%M")) for r in stored] == [
            (0, "09:00"),
            (2, "13:00"),
        ]
        assert stored[0].to_dict()["end_time"] == "12:00"

    def test_load_rule_set_none_when_no_rules(self, ana):
        assert rules_mod.load_rule_set(ana.id) is None

    def test_load_rule_set_wraps_rules(self, ana):
        rules_mod.create_rule(ana.id, 0, "09:00", "17:00", "UTC")
        rule_set = rules_mod.load_rule_set(ana.id)

        assert isinstance(rule_set, RuleSet)
        assert len(rule_set) == 1

    def test_unknown_timezone_rejected(self, ana):
        with pytest.raises(InvalidTimezone):
            rules_mod.create_rule(ana.id, 0, "09:00", "17:00", "Mars/Olympus_Mons")

    def test_default_rules_are_weekdays_nine_to_five(self, ana):
        created = rules_mod.create_default_rules(ana.id, "Europe/Berlin")

        assert sorted(r.day_of_week for r in created) == [0, 1, 2, 3, 4]
        assert {r.to_dict()["start_time"] for r in created} == {"09:00"}
        assert {r.to_dict()["end_time"] for r in created} == {"17:00"}
        assert {r.timezone for r in created} == {"Europe/Berlin"}

    def test_delete_rule_by_owner(self, ana):
        created = rules_mod.create_rule(ana.id, 0, "09:00", "17:00", "UTC")
        rules_mod.delete_rule(created.id, ana.id)
        assert rules_mod.list_rules(ana.id) == []

    def test_delete_rule_by_someone_else(self, ana, ben):
        created = rules_mod.create_rule(ana.id, 0, "09:00", "17:00", "UTC")

        with pytest.raises(NotAuthorized):
            rules_mod.delete_rule(created.id, ben.id)
        assert len(rules_mod.list_rules(ana.id)) == 1

    def test_delete_unknown_rule(self, ana):
        with pytest.raises(NotFound):
            rules_mod.delete_rule("missing", ana.id)

    def test_replace_rules_swaps_the_week(self, ana):
        rules_mod.create_default_rules(ana.id, "UTC")

        replaced = rules_mod.replace_rules(
            ana.id, [(5, "10:00", "12:00", None), (6, "10:00", "12:00", "Europe/Berlin")]
        )

        stored = rules_mod.list_rules(ana.id)
        assert [r.id for r in stored] == [r.id for r in replaced]
        assert [r.day_of_week for r in stored] == [5, 6]
        assert stored[1].timezone == "Europe/Berlin"

    def test_replace_rules_with_empty_list_clears(self, ana):
        rules_mod.create_default_rules(ana.id, "UTC")

        assert rules_mod.replace_rules(ana.id, []) == []
        assert rules_mod.load_rule_set(ana.id) is None

    @pytest.mark.parametrize(
        "bad_entry, error",
        [
            ((0, "12:00", "09:00", "UTC"), InvalidRequest),
            ((0, "25:00", "26:00", "UTC"), InvalidRequest),
            ((7, "09:00", "17:00", "UTC"), InvalidRequest),
            ((0, "09:00", "17:00", "Mars/Olympus_Mons"), InvalidTimezone),
        ],
    )
    def test_rejected_replacement_keeps_existing_rules(self, ana, bad_entry, error):
        original = rules_mod.create_rule(ana.id, 0, "09:00", "17:00", "UTC")

        with pytest.raises(error):
            rules_mod.replace_rules(ana.id, [(1, "09:00", "12:00", "UTC"), bad_entry])

        assert [r.id for r in rules_mod.list_rules(ana.id)] == [original.id]


class TestAvailabilityRange:
    """Tests for availability_range."""

    def test_default_range_without_rules(self, ana):
        assert rules_mod.availability_range(ana.id) == (8, 18)

    def test_range_spans_earliest_start_and_latest_end(self, ana):
        rules_mod.create_rule(ana.id, 0, "10:30", "14:00", "UTC")
        rules_mod.create_rule(ana.id, 3, "07:00", "12:00", "UTC")
        rules_mod.create_rule(ana.id, 4, "13:00", "19:15", "UTC")

        assert rules_mod.availability_range(ana.id) == (7, 19)


# ─────────────────────────────────────────────────────────────────────────────
# Blocked Time Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestBlockedTimes:
    """Tests for blocked-time storage."""

    def test_create_and_list(self, ana):
        blocked = rules_mod.create_blocked_time(ana.id, at(12), at(13), "Lunch")

        stored = rules_mod.list_blocked_times(ana.id)

        assert [b.id for b in stored] == [blocked.id]
        assert stored[0].start == at(12)
        assert stored[0].as_interval().summary == "Lunch"

    def test_end_must_follow_start(self, ana):
        with pytest.raises(InvalidRequest):
            rules_mod.create_blocked_time(ana.id, at(13), at(12))

    def test_blocked_in_range_filters_by_overlap(self, ana):
        rules_mod.create_blocked_time(ana.id, at(8), at(9))
        inside = rules_mod.create_blocked_time(ana.id, at(12), at(13))
        edge = rules_mod.create_blocked_time(ana.id, at(16), at(18))
        rules_mod.create_blocked_time(ana.id, at(10, day=3), at(11, day=3))

        found = rules_mod.blocked_in_range(ana.id, at(9), at(17))

        assert [b.id for b in found] == [inside.id, edge.id]

    def test_delete_blocked_time_owner_only(self, ana, ben):
        blocked = rules_mod.create_blocked_time(ana.id, at(12), at(13))

        with pytest.raises(NotAuthorized):
            rules_mod.delete_blocked_time(blocked.id, ben.id)

        rules_mod.delete_blocked_time(blocked.id, ana.id)
        assert rules_mod.list_blocked_times(ana.id) == []

    def test_delete_unknown_blocked_time(self, ana):
        with pytest.raises(NotFound):
            rules_mod.delete_blocked_time("missing", ana.id)
