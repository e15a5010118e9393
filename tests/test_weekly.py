# tests/test_weekly.py
import datetime as dt

from clubfit import weekly
from clubfit.models import Workout, WorkoutCategory, WorkoutStatus, WeeklyStat


def _done(category, duration=None, distance=None, calories=None) -> Workout:
    # only the numbers matter to the aggregator, the row itself is never saved here
    return Workout(category=category, status=WorkoutStatus.COMPLETED, total_duration=duration, distance=distance, calories_burned=calories)


def test_two_workouts_same_week_accumulate(db_session, make_user):
    u = make_user("weekly@example.com")
    wed = dt.datetime(2025, 3, 5, 18, 0)

    row = weekly.add_completed_workout(u.id, _done(WorkoutCategory.RUNNING, 1800, 5.0, 300), wed, db=db_session)
    assert row.week_start == dt.datetime(2025, 3, 3)
    assert row.total_workouts == 1

    row = weekly.add_completed_workout(u.id, _done(WorkoutCategory.STRENGTH, 600), wed + dt.timedelta(hours=1), db=db_session)
    assert row.total_workouts == 2
    assert row.total_duration == 2400
    assert row.total_distance == 5.0
    assert row.total_calories == 300
    assert row.running_count == 1
    assert row.strength_count == 1
    assert row.walking_count == 0
    assert row.sports_count == 0

    assert db_session.query(WeeklyStat).filter(WeeklyStat.user_id == u.id).count() == 1


def test_sunday_and_next_monday_split_weeks(db_session, make_user):
    u = make_user("sunday@example.com")
    weekly.add_completed_workout(u.id, _done(WorkoutCategory.WALKING, 900, 1.2), dt.datetime(2025, 3, 9, 21, 0), db=db_session)
    weekly.add_completed_workout(u.id, _done(WorkoutCategory.WALKING, 900, 1.2), dt.datetime(2025, 3, 10, 7, 0), db=db_session)

    rows = db_session.query(WeeklyStat).filter(WeeklyStat.user_id == u.id).order_by(WeeklyStat.week_start).all()
    assert [r.week_start for r in rows] == [dt.datetime(2025, 3, 3), dt.datetime(2025, 3, 10)]
    assert all(r.total_workouts == 1 for r in rows)


def test_stats_overview_empty_user(db_session, make_user):
    u = make_user("nothing@example.com")
    out = weekly.stats_overview(u.id, dt.datetime(2025, 3, 5), db=db_session)
    assert out["streak"] == {"current_streak": 0, "longest_streak": 0, "last_workout_at": None}
    assert out["current_week"] is None
    assert out["history"] == []
    assert out["all_time"]["total_workouts"] == 0
    assert out["by_category"] == {"RUNNING": 0, "STRENGTH": 0, "WALKING": 0, "SPORTS": 0}
