import os
import sys
import unittest


# Provide minimal env for Settings validation during import.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "unit-test-secret-with-enough-length-0123456789")

# Ensure `casemonitor` is importable when running from repo root.
TEST_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if TEST_ROOT not in sys.path:
    sys.path.insert(0, TEST_ROOT)


from api_helpers import reset_database  # noqa: E402

from casemonitor.access import Actor  # noqa: E402
from casemonitor.case_schemas import CasePatch, default_json_fields  # noqa: E402
from casemonitor.db import SessionLocal  # noqa: E402
from casemonitor.models import Case, UserRole  # noqa: E402
from casemonitor.reconciler import reconcile  # noqa: E402
from casemonitor.store import SqlCaseStore, StoreError  # noqa: E402

STATION = "Channagiri PS"


class TestSqlCaseStore(unittest.TestCase):
    def setUp(self):
        reset_database()
        self.db = SessionLocal()
        self.store = SqlCaseStore(self.db)

    def tearDown(self):
        self.db.close()

    def _insert(self, crime_number, **extra):
        values = default_json_fields()
        values.update(police_station=STATION, crime_number=crime_number, status="draft")
        values.update(extra)
        return self.store.insert(values)

    def test_insert_and_find(self):
        case = self._insert("10/2024", court_name="JMFC Channagiri")
        found = self.store.find_by_natural_key(STATION, "10/2024")

        self.assertIsNotNone(case.id)
        self.assertEqual(found.id, case.id)
        self.assertEqual(found.court_name, "JMFC Channagiri")
        self.assertIsNone(self.store.find_by_natural_key("Nyamathi PS", "10/2024"))

    def test_duplicate_natural_key_raises_and_session_recovers(self):
        self._insert("11/2024")
        with self.assertRaises(StoreError):
            self._insert("11/2024")

        # The session was rolled back and keeps working
        self._insert("12/2024")
        self.assertEqual(self.db.query(Case).count(), 2)

    def test_same_crime_number_in_two_stations(self):
        self._insert("13/2024")
        values = default_json_fields()
        values.update(police_station="Nyamathi PS", crime_number="13/2024")
        self.store.insert(values)
        self.assertEqual(self.db.query(Case).count(), 2)

    def test_update_fields_is_sparse(self):
        case = self._insert("14/2024", court_name="JMFC", investigating_officer="PI Suresh")
        updated = self.store.update_fields(case.id, CasePatch({"court_name": "Sessions"}))

        self.assertEqual(updated.court_name, "Sessions")
        self.assertEqual(updated.investigating_officer, "PI Suresh")

    def test_update_missing_case(self):
        import uuid

        with self.assertRaises(StoreError):
            self.store.update_fields(uuid.uuid4(), CasePatch({"court_name": "X"}))


class TestReconcileAgainstDatabase(unittest.TestCase):
    def setUp(self):
        reset_database()
        self.db = SessionLocal()

    def tearDown(self):
        self.db.close()

    def test_batch_commits_rows_individually(self):
        actor = Actor(role=UserRole.SHO, home_station=STATION, user_id="sho-1")
        result = reconcile(
            actor,
            [
                {"policeStation": STATION, "crimeNumber": "1/2025", "courtName": "A"},
                {"policeStation": "Harihar PS", "crimeNumber": "2/2025"},
                {"policeStation": STATION, "crimeNumber": "1/2025", "courtName": "B"},
                {"policeStation": STATION, "crimeNumber": "3/2025", "nextHearingDate": "02/01/2026"},
            ],
            SqlCaseStore(self.db),
        )

        self.assertEqual(result.to_dict()["inserted"], 2)
        self.assertEqual(result.to_dict()["updated"], 1)
        self.assertEqual(len(result.errors), 1)

        check = SessionLocal()
        try:
            first = check.query(Case).filter(Case.crime_number == "1/2025").one()
            third = check.query(Case).filter(Case.crime_number == "3/2025").one()
            self.assertEqual(first.court_name, "B")
            self.assertEqual(first.status, "draft")
            self.assertEqual(first.hearings, [])
            self.assertEqual(third.next_hearing_date, "2026-01-02")
            self.assertEqual(check.query(Case).count(), 2)
        finally:
            check.close()


if __name__ == "__main__":
    unittest.main()
