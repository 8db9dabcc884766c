from __future__ import annotations

import unittest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import patch

from sqlalchemy import create_engine, func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from fieldtrack.db import Base
from fieldtrack.errors import ApiError
from fieldtrack.models import ACTIVE_CHECKIN_INDEX, Checkin, CheckinStatus, Client, EmployeeClient, User
from fieldtrack.services.checkins import (
    get_active_checkin,
    list_assigned_clients,
    list_checkin_history,
    start_checkin,
    stop_checkin,
)


class _DummyDB:
    def __init__(self, *, commit_error: Exception | None = None) -> None:
        self.added: list[object] = []
        self.commits = 0
        self.rollbacks = 0
        self._commit_error = commit_error

    def scalar(self, _statement):  # type: ignore[no-untyped-def]
        return None

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def commit(self) -> None:
        if self._commit_error is not None:
            raise self._commit_error
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def refresh(self, obj: object) -> None:
        if getattr(obj, "id", None) is None:
            obj.id = 501  # type: ignore[attr-defined]


class _UntouchableDB:
    def __getattr__(self, name):  # type: ignore[no-untyped-def]
        raise AssertionError(f"database must not be used (called {name})")


def _active_checkin(employee_id: int = 1, client_id: int = 1) -> Checkin:
    return Checkin(
        id=300,
        employee_id=employee_id,
        client_id=client_id,
        checkin_time=datetime(2024, 1, 27, 4, 30, tzinfo=timezone.utc),
        status=CheckinStatus.CHECKED_IN,
    )


class StartCheckinTests(unittest.TestCase):
    def test_client_id_is_required(self) -> None:
        with self.assertRaises(ApiError) as exc:
            start_checkin(_UntouchableDB(), employee_id=1, client_id=None, lat=28.5, lon=77.0)
        self.assertEqual(exc.exception.status_code, 400)
        self.assertEqual(exc.exception.code, "CLIENT_ID_REQUIRED")

    def test_location_is_required(self) -> None:
        for lat, lon in ((None, 77.0), (28.5, None), (None, None)):
            with self.subTest(lat=lat, lon=lon):
                with self.assertRaises(ApiError) as exc:
                    start_checkin(_UntouchableDB(), employee_id=1, client_id=1, lat=lat, lon=lon)
                self.assertEqual(exc.exception.status_code, 400)
                self.assertEqual(exc.exception.code, "LOCATION_REQUIRED")

    def test_conflict_when_active_checkin_exists_regardless_of_client(self) -> None:
        db = _DummyDB()
        for client_id in (1, 2, 999):
            with self.subTest(client_id=client_id):
                with (
                    patch("fieldtrack.services.checkins._resolve_active_checkin", return_value=_active_checkin()),
                    patch("fieldtrack.services.checkins._resolve_assigned_client", return_value=None),
                ):
                    with self.assertRaises(ApiError) as exc:
                        start_checkin(db, employee_id=1, client_id=client_id, lat=28.5, lon=77.0)
                self.assertEqual(exc.exception.status_code, 400)
                self.assertEqual(exc.exception.code, "ACTIVE_CHECKIN_EXISTS")
        self.assertEqual(db.added, [])

    def test_forbidden_when_client_not_assigned(self) -> None:
        db = _DummyDB()
        with (
            patch("fieldtrack.services.checkins._resolve_active_checkin", return_value=None),
            patch("fieldtrack.services.checkins._resolve_assigned_client", return_value=None),
        ):
            with self.assertRaises(ApiError) as exc:
                start_checkin(db, employee_id=1, client_id=2, lat=28.5, lon=77.0)

        self.assertEqual(exc.exception.status_code, 403)
        self.assertEqual(exc.exception.code, "CLIENT_NOT_ASSIGNED")
        self.assertEqual(db.added, [])

    def test_success_persists_distance_without_warning(self) -> None:
        db = _DummyDB()
        client = Client(id=1, name="Test Client", latitude=28.5, longitude=77.0)
        with (
            patch("fieldtrack.services.checkins._resolve_active_checkin", return_value=None),
            patch("fieldtrack.services.checkins._resolve_assigned_client", return_value=client),
        ):
            checkin, distance_check = start_checkin(
                db,
                employee_id=1,
                client_id=1,
                lat=28.5001,
                lon=77.0001,
                notes="  met the buyer  ",
            )

        self.assertEqual(len(db.added), 1)
        self.assertIs(db.added[0], checkin)
        self.assertEqual(db.commits, 1)
        self.assertEqual(checkin.id, 501)
        self.assertEqual(checkin.status, CheckinStatus.CHECKED_IN)
        self.assertIsNone(checkin.checkout_time)
        self.assertEqual(checkin.notes, "met the buyer")
        self.assertLess(checkin.distance_from_client, 0.02)
        self.assertEqual(checkin.distance_from_client, distance_check.distance_km)
        self.assertIsNone(distance_check.warning)
        self.assertIsNotNone(checkin.checkin_time.tzinfo)

    def test_far_checkin_still_succeeds_with_warning(self) -> None:
        db = _DummyDB()
        client = Client(id=1, name="Test Client", latitude=28.5, longitude=77.0)
        with (
            patch("fieldtrack.services.checkins._resolve_active_checkin", return_value=None),
            patch("fieldtrack.services.checkins._resolve_assigned_client", return_value=client),
        ):
            checkin, distance_check = start_checkin(db, employee_id=1, client_id=1, lat=28.6, lon=77.0)

        self.assertEqual(db.commits, 1)
        self.assertGreater(checkin.distance_from_client, 0.5)
        self.assertIsNotNone(distance_check.warning)

    def test_unknown_distance_when_client_has_no_coordinates(self) -> None:
        db = _DummyDB()
        client = Client(id=1, name="Unmapped Client", latitude=None, longitude=None)
        with (
            patch("fieldtrack.services.checkins._resolve_active_checkin", return_value=None),
            patch("fieldtrack.services.checkins._resolve_assigned_client", return_value=client),
        ):
            checkin, distance_check = start_checkin(db, employee_id=1, client_id=1, lat=28.6, lon=77.0)

        self.assertIsNone(checkin.distance_from_client)
        self.assertIsNone(distance_check.warning)

    def test_concurrent_insert_is_reported_as_conflict(self) -> None:
        db = _DummyDB(
            commit_error=IntegrityError(
                "INSERT INTO checkins",
                {},
                Exception(f'duplicate key value violates unique constraint "{ACTIVE_CHECKIN_INDEX}"'),
            )
        )
        client = Client(id=1, name="Test Client", latitude=28.5, longitude=77.0)
        with (
            patch("fieldtrack.services.checkins._resolve_active_checkin", return_value=None),
            patch("fieldtrack.services.checkins._resolve_assigned_client", return_value=client),
        ):
            with self.assertRaises(ApiError) as exc:
                start_checkin(db, employee_id=1, client_id=1, lat=28.5, lon=77.0)

        self.assertEqual(exc.exception.code, "ACTIVE_CHECKIN_EXISTS")
        self.assertEqual(db.rollbacks, 1)

    def test_constraint_name_from_driver_diagnostics_is_used(self) -> None:
        orig = Exception("unique violation")
        orig.diag = SimpleNamespace(constraint_name=ACTIVE_CHECKIN_INDEX)  # type: ignore[attr-defined]
        db = _DummyDB(commit_error=IntegrityError("INSERT INTO checkins", {}, orig))
        client = Client(id=1, name="Test Client", latitude=28.5, longitude=77.0)
        with (
            patch("fieldtrack.services.checkins._resolve_active_checkin", return_value=None),
            patch("fieldtrack.services.checkins._resolve_assigned_client", return_value=client),
        ):
            with self.assertRaises(ApiError) as exc:
                start_checkin(db, employee_id=1, client_id=1, lat=28.5, lon=77.0)

        self.assertEqual(exc.exception.code, "ACTIVE_CHECKIN_EXISTS")

    def test_other_integrity_errors_are_not_reported_as_conflict(self) -> None:
        orig = Exception(
            'insert or update on table "checkins" violates foreign key constraint "checkins_client_id_fkey"'
        )
        orig.diag = SimpleNamespace(constraint_name="checkins_client_id_fkey")  # type: ignore[attr-defined]
        db = _DummyDB(commit_error=IntegrityError("INSERT INTO checkins", {}, orig))
        client = Client(id=1, name="Test Client", latitude=28.5, longitude=77.0)
        with (
            patch("fieldtrack.services.checkins._resolve_active_checkin", return_value=None),
            patch("fieldtrack.services.checkins._resolve_assigned_client", return_value=client),
        ):
            with self.assertRaises(IntegrityError):
                start_checkin(db, employee_id=1, client_id=1, lat=28.5, lon=77.0)

        self.assertEqual(db.rollbacks, 1)
        self.assertEqual(db.commits, 0)


class StopCheckinTests(unittest.TestCase):
    def test_not_found_without_active_session(self) -> None:
        db = _DummyDB()
        with patch("fieldtrack.services.checkins._resolve_active_checkin", return_value=None):
            with self.assertRaises(ApiError) as exc:
                stop_checkin(db, employee_id=1)

        self.assertEqual(exc.exception.status_code, 404)
        self.assertEqual(exc.exception.code, "NO_ACTIVE_CHECKIN")
        self.assertEqual(db.commits, 0)

    def test_closes_only_the_active_session(self) -> None:
        db = _DummyDB()
        active = _active_checkin()
        with patch("fieldtrack.services.checkins._resolve_active_checkin", return_value=active) as resolve_mock:
            checkin = stop_checkin(db, employee_id=1)

        resolve_mock.assert_called_once_with(db, employee_id=1, for_update=True)
        self.assertIs(checkin, active)
        self.assertEqual(checkin.status, CheckinStatus.CHECKED_OUT)
        self.assertIsNotNone(checkin.checkout_time)
        self.assertGreaterEqual(checkin.checkout_time, checkin.checkin_time)
        self.assertEqual(db.commits, 1)

    def test_active_lookup_filters_on_status_and_locks_the_row(self) -> None:
        captured: list[str] = []

        class _CapturingDB(_DummyDB):
            def scalar(self, statement):  # type: ignore[no-untyped-def]
                captured.append(str(statement.compile(dialect=postgresql.dialect())))
                return None

        db = _CapturingDB()
        with self.assertRaises(ApiError):
            stop_checkin(db, employee_id=1)
        get_active_checkin(db, employee_id=1)

        self.assertEqual(len(captured), 2)
        self.assertIn("checkins.status", captured[0])
        self.assertIn("FOR UPDATE", captured[0])
        self.assertNotIn("FOR UPDATE", captured[1])


class CheckinHistoryTests(unittest.TestCase):
    def test_invalid_dates_fail_before_touching_storage(self) -> None:
        for kwargs in ({"start_date": "27-01-2024"}, {"end_date": "2024/01/27"}, {"start_date": "2024-13-01"}):
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ApiError) as exc:
                    list_checkin_history(_UntouchableDB(), employee_id=1, **kwargs)
                self.assertEqual(exc.exception.status_code, 400)
                self.assertEqual(exc.exception.code, "INVALID_DATE")


def _utc(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def _sqlite_session() -> Session:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(
        engine,
        tables=[User.__table__, Client.__table__, EmployeeClient.__table__, Checkin.__table__],
    )
    return Session(engine, expire_on_commit=False)


class CheckinStorageTests(unittest.TestCase):
    """Runs the service against real SQL and the active-check-in index."""

    def setUp(self) -> None:
        self.db = _sqlite_session()
        self.db.add_all(
            [
                User(id=3, name="Emp1", email="emp1@test.com", password_hash="x"),
                User(id=4, name="Emp2", email="emp2@test.com", password_hash="x"),
                Client(id=1, name="Client A", address="Sector 18", latitude=28.5, longitude=77.0),
                Client(id=2, name="Client B", latitude=28.6, longitude=77.1),
                Client(id=3, name="Client C"),
                EmployeeClient(employee_id=3, client_id=1),
                EmployeeClient(employee_id=3, client_id=2),
                EmployeeClient(employee_id=4, client_id=1),
            ]
        )
        self.db.flush()
        for checkin_id, client_id, start, end in (
            (21, 1, _utc(27, 4, 30), _utc(27, 6, 30)),
            (22, 2, _utc(27, 7), _utc(27, 8)),
            (23, 1, _utc(26, 18, 29), _utc(26, 19)),
            (24, 2, _utc(27, 18, 30), _utc(27, 19)),
        ):
            self.db.add(
                Checkin(
                    id=checkin_id,
                    employee_id=3,
                    client_id=client_id,
                    checkin_time=start,
                    checkout_time=end,
                    status=CheckinStatus.CHECKED_OUT,
                )
            )
        self.db.commit()

    def tearDown(self) -> None:
        bind = self.db.get_bind()
        self.db.close()
        bind.dispose()

    def _open_session_for(self, employee_id: int, client_id: int) -> None:
        self.db.add(
            Checkin(
                employee_id=employee_id,
                client_id=client_id,
                checkin_time=_utc(28, 4),
                status=CheckinStatus.CHECKED_IN,
            )
        )
        self.db.commit()

    def _active_count(self, employee_id: int) -> int:
        return self.db.scalar(
            select(func.count())
            .select_from(Checkin)
            .where(Checkin.employee_id == employee_id, Checkin.status == CheckinStatus.CHECKED_IN)
        )

    def test_history_filters_by_business_day_range(self) -> None:
        cases = (
            ({}, [24, 22, 21, 23]),
            ({"start_date": "2024-01-27", "end_date": "2024-01-27"}, [22, 21]),
            ({"start_date": "2024-01-28"}, [24]),
            ({"end_date": "2024-01-26"}, [23]),
            ({"start_date": "2024-02-01"}, []),
        )
        for kwargs, expected_ids in cases:
            with self.subTest(kwargs=kwargs):
                rows = list_checkin_history(self.db, employee_id=3, **kwargs)
                self.assertEqual([row.id for row in rows], expected_ids)

    def test_history_rows_carry_client_details(self) -> None:
        rows = list_checkin_history(self.db, employee_id=3, start_date="2024-01-27", end_date="2024-01-27")

        self.assertEqual(rows[1].client.name, "Client A")
        self.assertEqual(rows[1].client.address, "Sector 18")
        self.assertEqual(list_checkin_history(self.db, employee_id=4), [])

    def test_assigned_clients_only(self) -> None:
        self.assertEqual([client.id for client in list_assigned_clients(self.db, employee_id=3)], [1, 2])
        self.assertEqual([client.id for client in list_assigned_clients(self.db, employee_id=4)], [1])

    def test_unique_index_rejects_second_open_session(self) -> None:
        self._open_session_for(employee_id=3, client_id=2)

        # Simulates a racing request that passed the lookup before the first insert landed.
        with patch("fieldtrack.services.checkins._resolve_active_checkin", return_value=None):
            with self.assertRaises(ApiError) as exc:
                start_checkin(self.db, employee_id=3, client_id=1, lat=28.5, lon=77.0)

        self.assertEqual(exc.exception.status_code, 400)
        self.assertEqual(exc.exception.code, "ACTIVE_CHECKIN_EXISTS")
        self.assertEqual(self._active_count(3), 1)

    def test_open_session_blocks_new_checkin_without_patching(self) -> None:
        self._open_session_for(employee_id=3, client_id=2)

        with self.assertRaises(ApiError) as exc:
            start_checkin(self.db, employee_id=3, client_id=1, lat=28.5, lon=77.0)

        self.assertEqual(exc.exception.code, "ACTIVE_CHECKIN_EXISTS")

    def test_start_and_stop_round_trip(self) -> None:
        checkin, distance_check = start_checkin(self.db, employee_id=4, client_id=1, lat=28.5001, lon=77.0001)

        self.assertIsNotNone(checkin.id)
        self.assertLess(distance_check.distance_km, 0.02)
        self.assertEqual(get_active_checkin(self.db, employee_id=4).id, checkin.id)

        closed = stop_checkin(self.db, employee_id=4)

        self.assertEqual(closed.id, checkin.id)
        self.assertEqual(closed.status, CheckinStatus.CHECKED_OUT)
        self.assertEqual(self._active_count(4), 0)
        self.assertIsNone(get_active_checkin(self.db, employee_id=4))

    def test_unassigned_client_is_forbidden(self) -> None:
        with self.assertRaises(ApiError) as exc:
            start_checkin(self.db, employee_id=4, client_id=3, lat=28.5, lon=77.0)

        self.assertEqual(exc.exception.status_code, 403)
        self.assertEqual(self._active_count(4), 0)


if __name__ == "__main__":
    unittest.main()
