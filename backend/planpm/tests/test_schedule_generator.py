from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import utc
from planpm import eventlog, models
from planpm.services import schedule_generator
from planpm.services.recurrence import as_utc, occurrences_per_year, utc_day
from planpm.store import DuplicateRecordError


def _days(schedules):
    return sorted(utc_day(s.due_date) for s in schedules)


def test_monthly_window_from_anchor(store, make_configuration):
    config = make_configuration(frequency="Monthly", schedule_date=utc(2024, 1, 15))

    outcome = schedule_generator.generate_window(store, config)

    assert len(outcome.created) == 12
    assert _days(outcome.created) == [date(2024, month, 15) for month in range(1, 13)]
    last = [s for s in outcome.created if s.is_last_of_window]
    assert len(last) == 1
    assert utc_day(last[0].due_date) == date(2024, 12, 15)
    first = outcome.created[0]
    assert first.status == models.STATUS_SCHEDULED
    assert first.configuration_id == config.id
    assert first.description == "Scheduled Calibration"
    assert store.events[-1].event_type == eventlog.SCHEDULE_GENERATED
    assert store.events[-1].payload["created"] == 12
    assert outcome.to_schema().configuration_id == config.id


def test_generation_is_idempotent(store, make_configuration):
    config = make_configuration(frequency="Weekly")

    first = schedule_generator.generate_window(store, config)
    second = schedule_generator.generate_window(store, config)

    assert len(first.created) == 52
    # existing days are free, so the rerun only fills the tail of the window
    assert set(_days(second.created)).isdisjoint(_days(first.created))
    assert _days(second.created) == [date(2025, 1, 13)]
    days = _days(store.list_schedules(configuration_id=config.id))
    assert len(days) == len(set(days))


def test_rerun_moves_last_of_window_flag(store, make_configuration):
    config = make_configuration(frequency="Weekly")
    schedule_generator.generate_window(store, config)

    schedule_generator.generate_window(store, config)

    flagged = [
        s for s in store.list_schedules(configuration_id=config.id, exclude_status=models.STATUS_COMPLETED)
        if s.is_last_of_window
    ]
    assert _days(flagged) == [date(2025, 1, 13)]


def test_anchor_offset_keeps_calendar_days(store, make_configuration):
    anchor = datetime(2024, 1, 31, 0, 30, tzinfo=timezone(timedelta(hours=5)))
    config = make_configuration(
        frequency="Monthly", schedule_date=as_utc(anchor), utc_offset_minutes=300
    )

    outcome = schedule_generator.generate_window(store, config)

    assert [s.due_day for s in outcome.created[:3]] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 29)]
    assert outcome.created[0].due_date == datetime(2024, 1, 30, 19, 30, tzinfo=timezone.utc)
    rerun = schedule_generator.generate_window(store, config)
    days = [s.due_day for s in store.list_schedules(configuration_id=config.id)]
    assert len(days) == len(set(days))
    assert [s.due_day for s in rerun.created] == [date(2025, 1, 29)]


@pytest.mark.parametrize("frequency", ["Daily", "Weekly", "Monthly", "3 Months", "6 Months", "1 Year", "Legacy"])
def test_generation_terminates_within_twice_target(store, make_configuration, frequency):
    config = make_configuration(frequency=frequency)
    schedule_generator.generate_window(store, config)

    rerun = schedule_generator.generate_window(store, config)

    assert rerun.iterations <= 2 * occurrences_per_year(frequency)


def test_existing_days_are_skipped_without_consuming_slots(store, make_configuration):
    config = make_configuration(frequency="3 Months", schedule_date=utc(2024, 1, 10))
    existing = schedule_generator.build_occurrence(config, utc(2024, 4, 10, 15))
    existing.status = models.STATUS_COMPLETED
    store.add_schedules([existing])

    outcome = schedule_generator.generate_window(store, config)

    assert outcome.skipped_days == [date(2024, 4, 10)]
    assert _days(outcome.created) == [date(2024, 1, 10), date(2024, 7, 10), date(2024, 10, 10), date(2025, 1, 10)]
    assert outcome.created[-1].is_last_of_window


def test_walk_stops_one_year_after_anchor(make_configuration):
    config = make_configuration(frequency="6 Months", schedule_date=utc(2024, 3, 1))
    taken = {date(2024, 3, 1), date(2024, 9, 1)}

    plan = schedule_generator.plan_window(config, config.schedule_date, taken)

    # 2025-03-01 is inside the window, 2025-09-01 is past it
    assert _days(plan.drafts) == [date(2025, 3, 1)]
    assert plan.iterations == 4


def test_legacy_rows_without_configuration_count_as_existing(store, make_configuration):
    config = make_configuration(frequency="6 Months", schedule_date=utc(2024, 2, 1))
    legacy = schedule_generator.build_occurrence(config, utc(2024, 2, 1))
    legacy.configuration_id = None
    store.add_schedules([legacy])

    outcome = schedule_generator.generate_window(store, config)

    assert _days(outcome.created) == [date(2024, 8, 1), date(2025, 2, 1)]


def test_occurrences_carry_configuration_fields(store, make_configuration):
    template = store.add_template(models.TestTemplate(name="Balance", structure=[]))
    config = make_configuration(
        frequency="1 Year",
        maintenance_type="AMC",
        template_id=template.id,
        maintenance_by="vendor",
        vendor_name="Acme Service",
        vendor_contact="svc@acme.test",
    )

    outcome = schedule_generator.generate_window(store, config)

    (occurrence,) = outcome.created
    assert occurrence.maintenance_type == "AMC"
    assert occurrence.template_id == template.id
    assert occurrence.maintenance_by == "vendor"
    assert occurrence.vendor_name == "Acme Service"
    assert occurrence.vendor_contact == "svc@acme.test"
    assert occurrence.is_last_of_window is True


def test_lost_race_replans_once(store, make_configuration, monkeypatch):
    config = make_configuration(frequency="3 Months", schedule_date=utc(2024, 1, 10))
    original_add = store.add_schedules
    calls = {"count": 0}

    def racing_add(schedules):
        calls["count"] += 1
        if calls["count"] == 1:
            # another session persists the first day between planning and insert
            rival = schedule_generator.build_occurrence(config, utc(2024, 1, 10, 18))
            original_add([rival])
        return original_add(schedules)

    monkeypatch.setattr(store, "add_schedules", racing_add)

    outcome = schedule_generator.generate_window(store, config)

    assert outcome.retried is True
    days = _days(store.list_schedules(configuration_id=config.id))
    assert len(days) == len(set(days))
    assert date(2024, 1, 10) in days
    assert date(2024, 1, 10) not in _days(outcome.created)


def test_memory_store_rejects_duplicate_day(store, make_configuration):
    config = make_configuration()
    store.add_schedules([schedule_generator.build_occurrence(config, utc(2024, 1, 15, 8))])

    with pytest.raises(DuplicateRecordError):
        store.add_schedules([schedule_generator.build_occurrence(config, utc(2024, 1, 15, 20))])
