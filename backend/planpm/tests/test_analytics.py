from conftest import utc
from planpm import models
from planpm.services import analytics, schedule_generator


def _occurrence(store, config, due, *, status=models.STATUS_SCHEDULED, completed=None):
    schedule = schedule_generator.build_occurrence(config, due)
    schedule.status = status
    schedule.completed_date = completed
    store.add_schedules([schedule])
    return schedule


def test_classify_completion_rules(make_configuration):
    config = make_configuration()
    now = utc(2024, 6, 15)

    def build(due, **kwargs):
        schedule = schedule_generator.build_occurrence(config, due)
        for key, value in kwargs.items():
            setattr(schedule, key, value)
        return schedule

    assert analytics.classify_completion(
        build(utc(2024, 6, 1), status="Completed", completed_date=utc(2024, 5, 30)), now) == "on_time"
    assert analytics.classify_completion(
        build(utc(2024, 6, 1), status="Completed", completed_date=utc(2024, 6, 3)), now) == "overdue"
    assert analytics.classify_completion(build(utc(2024, 6, 1), status="Completed"), now) == "on_time"
    assert analytics.classify_completion(build(utc(2024, 6, 1), status="In Progress"), now) == "overdue"
    assert analytics.classify_completion(build(utc(2024, 6, 20)), now) is None


def test_completion_trend_buckets_by_due_month(store, make_configuration):
    config = make_configuration()
    _occurrence(store, config, utc(2024, 4, 10), status="Completed", completed=utc(2024, 4, 9))
    _occurrence(store, config, utc(2024, 5, 10), status="Completed", completed=utc(2024, 5, 12))
    _occurrence(store, config, utc(2024, 6, 3))
    _occurrence(store, config, utc(2024, 6, 28))
    _occurrence(store, config, utc(2023, 11, 5))

    trend = analytics.completion_trend(store, utc(2024, 6, 15), months=3)

    assert [point.month for point in trend] == ["2024-04", "2024-05", "2024-06"]
    assert [point.label for point in trend] == ["Apr", "May", "Jun"]
    assert [(point.on_time, point.overdue) for point in trend] == [(1, 0), (0, 1), (0, 1)]


def test_monthly_counts(store, make_configuration):
    pm = make_configuration(maintenance_type="PM")
    long_pm = make_configuration(maintenance_type="Preventative Maintenance")
    amc = make_configuration(maintenance_type="AMC")
    calibration = make_configuration(maintenance_type="Calibration")
    _occurrence(store, pm, utc(2024, 6, 3))
    _occurrence(store, long_pm, utc(2024, 6, 20))
    _occurrence(store, amc, utc(2024, 6, 30, 23))
    _occurrence(store, amc, utc(2024, 7, 1))
    done = _occurrence(store, calibration, utc(2024, 6, 5), status="Completed", completed=utc(2024, 6, 6))
    store.save_result(models.MaintenanceResult(
        schedule_id=done.id,
        instrument_id=done.instrument_id,
        completed_date=utc(2024, 6, 6),
        result_type="calibration",
    ))

    counts = analytics.monthly_counts(store, utc(2024, 6, 15))

    assert (counts.pm, counts.amc, counts.calibration, counts.total) == (2, 1, 1, 3)
