# tests/test_workouts.py
import datetime as dt
import pytest
from sqlalchemy.exc import IntegrityError

from clubfit import workouts, streaks, weekly, clubs
from clubfit.errors import ConflictError, NotFoundError, ValidationError
from clubfit.models import Workout, WorkoutStatus, WorkoutCategory, Split, Activity, WeeklyStat
from clubfit.schemas import WorkoutCreate, SplitCreate, ActivityCreate, WorkoutUpdate

T0 = dt.datetime(2025, 3, 5, 7, 0)  # a Wednesday


def _start(db, user, category="RUNNING", at=T0, **kw):
    return workouts.create_workout(user.id, WorkoutCreate(category=category, **kw), at=at, db=db)


def test_only_one_active_workout_per_user(db_session, make_user):
    u = make_user("solo@example.com")
    w = _start(db_session, u)
    assert w.status == WorkoutStatus.IN_PROGRESS
    assert w.category == WorkoutCategory.RUNNING

    with pytest.raises(ConflictError):
        _start(db_session, u, "strength")

    # someone else is unaffected
    other = make_user("other@example.com")
    assert _start(db_session, other).user_id == other.id

    # finishing the first frees the slot
    workouts.update_workout(w.id, u.id, WorkoutUpdate(status="CANCELLED"), at=T0 + dt.timedelta(minutes=1), db=db_session)
    assert _start(db_session, u, "WALKING").category == WorkoutCategory.WALKING


def test_database_rejects_second_in_progress_row(db_session, make_user):
    u = make_user("race@example.com")
    _start(db_session, u)
    # skip the service pre-check entirely, the partial index still holds
    db_session.add(Workout(user_id=u.id, category=WorkoutCategory.SPORTS, status=WorkoutStatus.IN_PROGRESS, start_time=T0))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_splits_are_numbered_and_distance_is_their_sum(db_session, make_user):
    u = make_user("splits@example.com")
    w = _start(db_session, u)

    s1 = workouts.add_split(w.id, u.id, SplitCreate(distance=1.0, duration=300), db=db_session)
    s2 = workouts.add_split(w.id, u.id, SplitCreate(distance=0.5, duration=160), db=db_session)
    s3 = workouts.add_split(w.id, u.id, SplitCreate(distance=2.0, duration=660), db=db_session)

    assert [s1.split_number, s2.split_number, s3.split_number] == [1, 2, 3]
    assert s1.pace == 5.0

    got = workouts.get_workout(w.id, u.id, db=db_session)
    assert got.distance == pytest.approx(3.5)
    assert [s.split_number for s in got.splits] == [1, 2, 3]


def test_split_needs_owner_and_running_workout(db_session, make_user):
    u = make_user("owner@example.com")
    intruder = make_user("intruder@example.com")
    w = _start(db_session, u)

    with pytest.raises(NotFoundError):
        workouts.add_split(w.id, intruder.id, SplitCreate(distance=1, duration=300), db=db_session)
    with pytest.raises(NotFoundError):
        workouts.add_split(9999, u.id, SplitCreate(distance=1, duration=300), db=db_session)

    workouts.update_workout(w.id, u.id, WorkoutUpdate(status="COMPLETED"), at=T0 + dt.timedelta(minutes=20), db=db_session)
    with pytest.raises(NotFoundError):
        workouts.add_split(w.id, u.id, SplitCreate(distance=1, duration=300), db=db_session)


def test_complete_sets_duration_pace_and_stats(db_session, make_user):
    u = make_user("finisher@example.com")
    w = _start(db_session, u)

    done = workouts.update_workout(
        w.id, u.id, WorkoutUpdate(status="COMPLETED", distance=5.0, calories_burned=300),
        at=T0 + dt.timedelta(minutes=30), db=db_session,
    )
    assert done.status == WorkoutStatus.COMPLETED
    assert done.end_time == T0 + dt.timedelta(minutes=30)
    assert done.total_duration == 1800
    assert done.pace == pytest.approx(6.0)
    assert done.calories_source == "manual"

    s = streaks.get_streak(u.id, db=db_session)
    assert s.current_streak == 1

    week = weekly.get_week(u.id, T0, db=db_session)
    assert week.total_workouts == 1
    assert week.total_duration == 1800
    assert week.total_distance == 5.0
    assert week.total_calories == 300
    assert week.running_count == 1


def test_completing_twice_counts_once(db_session, make_user):
    u = make_user("twice@example.com")
    w = _start(db_session, u)
    end = T0 + dt.timedelta(minutes=10)
    workouts.update_workout(w.id, u.id, WorkoutUpdate(status="COMPLETED"), at=end, db=db_session)
    again = workouts.update_workout(w.id, u.id, WorkoutUpdate(status="COMPLETED", notes="felt good"), at=end + dt.timedelta(hours=1), db=db_session)

    assert again.end_time == end
    assert again.notes == "felt good"
    assert weekly.get_week(u.id, T0, db=db_session).total_workouts == 1


def test_explicit_total_duration_and_estimated_calories(db_session, make_user):
    u = make_user("lifter@example.com")
    w = _start(db_session, u, "STRENGTH")
    done = workouts.update_workout(
        w.id, u.id, WorkoutUpdate(status="COMPLETED", total_duration=3600, estimate_calories=True),
        at=T0 + dt.timedelta(minutes=75), db=db_session,
    )
    assert done.total_duration == 3600
    assert done.pace is None
    assert done.calories_burned == 420
    assert done.calories_source == "estimated"


def test_cancel_only_from_in_progress_and_no_stats(db_session, make_user):
    u = make_user("quitter@example.com")
    w = _start(db_session, u)
    c = workouts.update_workout(w.id, u.id, WorkoutUpdate(status="CANCELLED"), at=T0 + dt.timedelta(minutes=3), db=db_session)
    assert c.status == WorkoutStatus.CANCELLED
    assert c.end_time is not None
    assert streaks.get_streak(u.id, db=db_session) is None
    assert weekly.get_week(u.id, T0, db=db_session) is None

    # a completed workout can't be cancelled afterwards
    w2 = _start(db_session, u, at=T0 + dt.timedelta(hours=1))
    workouts.update_workout(w2.id, u.id, WorkoutUpdate(status="COMPLETED"), at=T0 + dt.timedelta(hours=2), db=db_session)
    still = workouts.update_workout(w2.id, u.id, WorkoutUpdate(status="CANCELLED"), db=db_session)
    assert still.status == WorkoutStatus.COMPLETED


def test_completion_survives_stat_failure(db_session, make_user, monkeypatch):
    u = make_user("unlucky@example.com")
    w = _start(db_session, u)

    def boom(*args, **kwargs):
        raise RuntimeError("streak table on fire")

    monkeypatch.setattr(streaks, "record_completion", boom)
    done = workouts.update_workout(w.id, u.id, WorkoutUpdate(status="COMPLETED", distance=2.0), at=T0 + dt.timedelta(minutes=12), db=db_session)

    assert done.status == WorkoutStatus.COMPLETED
    # the other aggregate still went through
    assert weekly.get_week(u.id, T0, db=db_session).total_workouts == 1


def test_activities_add_and_remove(db_session, make_user):
    u = make_user("gym@example.com")
    w = _start(db_session, u, "STRENGTH")
    a = workouts.add_activity(w.id, u.id, ActivityCreate(name="  Squat ", sets=5, reps=5, weight=100), db=db_session)
    assert a.name == "Squat"

    # an activity id from a different workout isn't reachable through this one
    other = make_user("gym2@example.com")
    w_other = _start(db_session, other, "STRENGTH")
    a_other = workouts.add_activity(w_other.id, other.id, ActivityCreate(name="Row"), db=db_session)
    with pytest.raises(NotFoundError):
        workouts.remove_activity(w.id, u.id, a_other.id, db=db_session)

    # removing works on a finished workout too
    workouts.update_workout(w.id, u.id, WorkoutUpdate(status="COMPLETED"), at=T0 + dt.timedelta(minutes=40), db=db_session)
    workouts.remove_activity(w.id, u.id, a.id, db=db_session)
    assert db_session.get(Activity, a.id) is None
    assert db_session.get(Activity, a_other.id) is not None


def test_delete_cascades_children(db_session, make_user):
    u = make_user("deleter@example.com")
    w = _start(db_session, u)
    workouts.add_split(w.id, u.id, SplitCreate(distance=1, duration=320), db=db_session)
    workouts.add_activity(w.id, u.id, ActivityCreate(name="Strides"), db=db_session)

    with pytest.raises(NotFoundError):
        workouts.delete_workout(w.id, make_user("nope@example.com").id, db=db_session)

    workouts.delete_workout(w.id, u.id, db=db_session)
    assert db_session.query(Split).filter(Split.workout_id == w.id).count() == 0
    assert db_session.query(Activity).filter(Activity.workout_id == w.id).count() == 0
    with pytest.raises(NotFoundError):
        workouts.get_workout(w.id, u.id, db=db_session)


def test_list_and_active(db_session, make_user):
    u = make_user("lister@example.com")
    first = _start(db_session, u, "WALKING", at=T0)
    workouts.update_workout(first.id, u.id, WorkoutUpdate(status="COMPLETED"), at=T0 + dt.timedelta(minutes=30), db=db_session)
    second = _start(db_session, u, "RUNNING", at=T0 + dt.timedelta(hours=3))

    rows = workouts.list_workouts(u.id, db=db_session)
    assert [w.id for w in rows] == [second.id, first.id]
    assert [w.id for w in workouts.list_workouts(u.id, status=WorkoutStatus.COMPLETED, db=db_session)] == [first.id]
    assert [w.id for w in workouts.list_workouts(u.id, category=WorkoutCategory.RUNNING, db=db_session)] == [second.id]
    assert workouts.list_workouts(u.id, limit=1, offset=1, db=db_session)[0].id == first.id

    assert workouts.get_active_workout(u.id, db=db_session).id == second.id


def test_club_workout_requires_open_membership(db_session, make_user):
    host = make_user("host@example.com")
    guest = make_user("guest@example.com")
    s = clubs.create_session(host.id, "Track", db=db_session)

    with pytest.raises(ValidationError):
        _start(db_session, guest, club_session_id=s.id)

    clubs.join_by_code(guest.id, s.code, db=db_session)
    w = _start(db_session, guest, club_session_id=s.id)
    assert w.club_session_id == s.id


def test_workout_to_dict_has_display_strings(db_session, make_user):
    u = make_user("display@example.com")
    w = _start(db_session, u)
    workouts.add_split(w.id, u.id, SplitCreate(distance=0.8, duration=240), db=db_session)
    done = workouts.update_workout(w.id, u.id, WorkoutUpdate(status="COMPLETED", total_duration=240), db=db_session)

    d = workouts.workout_to_dict(done)
    assert d["distance_formatted"] == "800m"
    assert d["duration_formatted"] == "4:00"
    assert d["pace_formatted"] == "5:00 /km"
    assert d["splits"][0]["split_number"] == 1


def test_split_number_collision_becomes_conflict(db_session, make_user):
    u = make_user("clash@example.com")
    w = _start(db_session, u)
    workouts.add_split(w.id, u.id, SplitCreate(distance=1.0, duration=300), db=db_session)

    # a parallel request already wrote split 3, the count only sees two splits
    db_session.add(Split(workout_id=w.id, split_number=3, distance=1.0, duration=300, pace=5.0, timestamp=T0))
    db_session.commit()

    with pytest.raises(ConflictError):
        workouts.add_split(w.id, u.id, SplitCreate(distance=1.0, duration=320), db=db_session)

    numbers = [s.split_number for s in workouts.get_workout(w.id, u.id, db=db_session).splits]
    assert numbers == [1, 3]


def test_database_rejects_duplicate_split_number(db_session, make_user):
    u = make_user("dupe@example.com")
    w = _start(db_session, u)
    workouts.add_split(w.id, u.id, SplitCreate(distance=1.0, duration=300), db=db_session)

    db_session.add(Split(workout_id=w.id, split_number=1, distance=0.5, duration=150, pace=5.0, timestamp=T0))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()
