from datetime import datetime

import pytest

from datajobs.modules.scheduler import cron

# A fixed "now" keeps next-run expectations deterministic.
NOW = datetime(2030, 3, 12, 8, 30, 15)


def _parse(runs):
    return [datetime.fromisoformat(r) for r in runs]


def test_validate_daily_expression_next_runs():
    """'0 9 * * *' fires at 09:00 on five consecutive days."""
    result = cron.validate_cron("0 9 * * *", after=NOW)
    assert result.valid is True
    assert result.error is None
    runs = _parse(result.next_runs)
    assert len(runs) == 5
    assert all(r.hour == 9 and r.minute == 0 for r in runs)
    assert all(a < b for a, b in zip(runs, runs[1:]))
    assert runs[0] == datetime(2030, 3, 12, 9, 0)
    assert runs[-1] == datetime(2030, 3, 16, 9, 0)


def test_validate_minute_step_next_runs():
    result = cron.validate_cron("*/15 * * * *", after=NOW)
    assert result.valid is True
    runs = _parse(result.next_runs)
    assert all(r.minute in (0, 15, 30, 45) for r in runs)
    assert all(a < b for a, b in zip(runs, runs[1:]))
    assert runs == [
        datetime(2030, 3, 12, 8, 45),
        datetime(2030, 3, 12, 9, 0),
        datetime(2030, 3, 12, 9, 15),
        datetime(2030, 3, 12, 9, 30),
        datetime(2030, 3, 12, 9, 45),
    ]


@pytest.mark.parametrize("expression", ["0 9 * *", "0 9 * * * *", ""])
def test_validate_rejects_wrong_part_count(expression):
    result = cron.validate_cron(expression)
    assert result.valid is False
    assert result.error == cron.PARTS_ERROR
    assert result.next_runs is None


@pytest.mark.parametrize("expression, error", [
    ("60 * * * *", "Invalid minute: 60"),
    ("abc * * * *", "Invalid minute: abc"),
    ("0 24 * * *", "Invalid hour: 24"),
    ("0 9 0 * *", "Invalid day: 0"),
    ("0 9 * 13 *", "Invalid month: 13"),
    ("0 9 * * 7", "Invalid dayOfWeek: 7"),
    ("*/0 * * * *", "Invalid minute: */0"),
    ("*/x * * * *", "Invalid minute: */x"),
])
def test_validate_reports_first_invalid_field(expression, error):
    result = cron.validate_cron(expression)
    assert result.valid is False
    assert result.error == error


def test_validate_accepts_lists_and_ranges():
    assert cron.validate_cron("0,30 9-17 * * 1-5", after=NOW).valid is True


def test_next_run_every_minute():
    assert cron.get_next_cron_run("* * * * *", NOW) == datetime(2030, 3, 12, 8, 31)


def test_next_run_minute_step_rolls_to_next_hour():
    after = datetime(2030, 3, 12, 8, 50, 0)
    assert cron.get_next_cron_run("*/15 * * * *", after) == datetime(2030, 3, 12, 9, 0)


def test_next_run_minute_step_does_not_repeat_current_minute():
    after = datetime(2030, 3, 12, 8, 45, 0)
    assert cron.get_next_cron_run("*/15 * * * *", after) == datetime(2030, 3, 12, 9, 0)


def test_next_run_invalid_step_is_next_minute():
    assert cron.get_next_cron_run("*/0 * * * *", NOW) == datetime(2030, 3, 12, 8, 31)


def test_next_run_fixed_time_later_today():
    assert cron.get_next_cron_run("0 9 * * *", NOW) == datetime(2030, 3, 12, 9, 0)


def test_next_run_fixed_time_passed_moves_to_tomorrow():
    after = datetime(2030, 3, 12, 9, 0, 0)
    assert cron.get_next_cron_run("0 9 * * *", after) == datetime(2030, 3, 13, 9, 0)


def test_next_run_hourly_at_minute():
    assert cron.get_next_cron_run("30 * * * *", NOW) == datetime(2030, 3, 12, 9, 30)
    assert cron.get_next_cron_run("45 * * * *", NOW) == datetime(2030, 3, 12, 8, 45)


def test_next_run_hour_step():
    assert cron.get_next_cron_run("0 */6 * * *", NOW) == datetime(2030, 3, 12, 12, 0)
    late = datetime(2030, 3, 12, 20, 0, 0)
    assert cron.get_next_cron_run("0 */6 * * *", late) == datetime(2030, 3, 13, 0, 0)


def test_next_run_wrong_part_count_is_next_minute():
    assert cron.get_next_cron_run("0 9 *", NOW) == datetime(2030, 3, 12, 8, 31, 15)


def test_next_run_ignores_day_fields():
    """Only minute and hour drive the next run; weekdays are not applied."""
    # 2030-03-16 is a Saturday.
    saturday = datetime(2030, 3, 16, 8, 0, 0)
    assert cron.get_next_cron_run("0 9 * * 1-5", saturday) == datetime(2030, 3, 16, 9, 0)


@pytest.mark.parametrize("expression, description", [
    ("* * * * *", "Every minute"),
    ("*/15 * * * *", "Every 15 minutes"),
    ("0 */2 * * *", "Every 2 hours at minute 0"),
    ("30 * * * *", "Every hour at minute 30"),
    ("0 9 * * *", "At 09:00 daily"),
    ("0 9 * * 1-5", "At 09:00 on Monday through Friday"),
    ("0 9 * * 1,3", "At 09:00 on Monday, Wednesday"),
    ("5 8 1 * *", "At 08:05 on day 1 of the month"),
])
def test_describe_cron(expression, description):
    assert cron.describe_cron(expression) == description


def test_validate_rejects_range_without_representable_run():
    result = cron.validate_cron("99999999999-1 * * * *", after=NOW)
    assert result.valid is False
    assert "no valid next run" in result.error
