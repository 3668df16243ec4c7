# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Week window calculator — ISO week ids, bounds, week arithmetic."""

from datetime import date, datetime

import pytest

from lifecycle.schemas import InvalidWeekId, LifecycleValidationError
from lifecycle.weeks import (
    current_iso_week,
    iso_week_of,
    month_id,
    months_to_weeks,
    next_week_id,
    parse_week_id,
    week_bounds,
    week_dates,
    weeks_between,
    weeks_until,
)


class TestCurrentIsoWeek:

    def test_midweek(self):
        assert current_iso_week(date(2025, 11, 19)) == "2025-W47"

    def test_monday_and_sunday_same_week(self):
        assert current_iso_week(date(2025, 11, 17)) == "2025-W47"
        assert current_iso_week(date(2025, 11, 23)) == "2025-W47"

    def test_year_boundary_belongs_to_next_iso_year(self):
        # Monday 2024-12-30 is in the week holding 2025's first Thursday
        assert current_iso_week(date(2024, 12, 30)) == "2025-W01"

    def test_early_january_belongs_to_previous_iso_year(self):
        assert current_iso_week(date(2021, 1, 3)) == "2020-W53"

    def test_accepts_datetime_and_string(self):
        assert current_iso_week(datetime(2025, 11, 19, 23, 30)) == "2025-W47"
        assert iso_week_of("2025-11-19T08:00:00Z") == "2025-W47"

    def test_default_is_today(self):
        assert current_iso_week() == iso_week_of(date.today())


class TestParseWeekId:

    def test_valid(self):
        assert parse_week_id("2025-W07") == (2025, 7)

    @pytest.mark.parametrize("bad", ["2025-47", "2025-W7", "25-W47", "2025W47", "", "2025-w47"])
    def test_malformed(self, bad):
        with pytest.raises(InvalidWeekId):
            parse_week_id(bad)

    def test_week_53_only_in_long_years(self):
        assert parse_week_id("2020-W53") == (2020, 53)
        with pytest.raises(InvalidWeekId):
            parse_week_id("2025-W53")

    def test_week_zero(self):
        with pytest.raises(InvalidWeekId):
            parse_week_id("2025-W00")

    def test_non_string(self):
        with pytest.raises(InvalidWeekId):
            parse_week_id(202547)

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_week_id("nope")


class TestBounds:

    def test_monday_to_sunday(self):
        start, end = week_bounds("2025-W47")
        assert start == datetime(2025, 11, 17, 0, 0, 0)
        assert end == datetime(2025, 11, 23, 23, 59, 59)

    def test_week_dates(self):
        assert week_dates("2025-W01") == ("2024-12-30", "2025-01-05")

    def test_invalid_week(self):
        with pytest.raises(InvalidWeekId):
            week_bounds("2025-W99")


class TestWeeksUntil:

    def test_monday_of_the_week_is_zero(self):
        assert weeks_until("2025-11-17", "2025-W47") == 0

    def test_later_this_week_rounds_up(self):
        assert weeks_until("2025-11-20", "2025-W47") == 1

    def test_next_monday(self):
        assert weeks_until(date(2025, 11, 24), "2025-W47") == 1

    def test_partial_weeks_round_up(self):
        assert weeks_until("2025-11-25", "2025-W47") == 2

    def test_passed_is_negative(self):
        assert weeks_until("2025-11-16", "2025-W47") == -1
        assert weeks_until("2025-11-01", "2025-W47") == -3

    def test_bad_date(self):
        with pytest.raises(LifecycleValidationError):
            weeks_until("next tuesday", "2025-W47")


class TestWeekArithmetic:

    def test_next_week(self):
        assert next_week_id("2025-W47") == "2025-W48"

    def test_next_week_across_years(self):
        assert next_week_id("2025-W52") == "2026-W01"
        assert next_week_id("2020-W53") == "2021-W01"

    def test_weeks_between(self):
        assert weeks_between("2025-W47", "2025-W50") == ["2025-W47", "2025-W48", "2025-W49"]

    def test_weeks_between_empty(self):
        assert weeks_between("2025-W47", "2025-W47") == []
        assert weeks_between("2025-W48", "2025-W47") == []

    def test_month_id_uses_monday(self):
        assert month_id("2025-W48") == "2025-11"
        assert month_id("2025-W49") == "2025-12"

    @pytest.mark.parametrize("months,weeks", [(1, 5), (3, 13), (6, 26), (12, 52)])
    def test_months_to_weeks(self, months, weeks):
        assert months_to_weeks(months) == weeks
