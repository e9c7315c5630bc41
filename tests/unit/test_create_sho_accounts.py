import os
import sys
import unittest


# Provide minimal env for Settings validation during import.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "unit-test-secret-with-enough-length-0123456789")

# Ensure `casemonitor` and the scripts directory are importable from repo root.
TEST_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
for path in (TEST_ROOT, os.path.join(TEST_ROOT, "scripts")):
    if path not in sys.path:
        sys.path.insert(0, path)


from api_helpers import make_user, reset_database  # noqa: E402

import create_sho_accounts as script  # noqa: E402
from casemonitor.db import SessionLocal  # noqa: E402
from casemonitor.models import Case, User, UserRole  # noqa: E402
from casemonitor.security import verify_password  # noqa: E402


class TestCreateShoAccounts(unittest.TestCase):
    def setUp(self):
        reset_database()
        self.db = SessionLocal()
        for station, crime in (
            ("Davangere City PS", "1"),
            ("Davangere City PS", "2"),
            ("Harihar PS", "1"),
            ("Nyamathi PS", "1"),
        ):
            self.db.add(Case(police_station=station, crime_number=crime))
        self.db.commit()

    def tearDown(self):
        self.db.close()

    def test_username_for_station(self):
        self.assertEqual(script.username_for_station("Davangere City PS"), "sho_davangerec")
        self.assertEqual(script.username_for_station("Harihar PS"), "sho_hariharps")

    def test_creates_one_sho_per_uncovered_station(self):
        make_user("sho_existing", UserRole.SHO, "Harihar PS")

        created = script.create_sho_accounts(self.db, "station-password")

        self.assertEqual(
            sorted(u.police_station for u in created), ["Davangere City PS", "Nyamathi PS"]
        )
        shos = self.db.query(User).filter(User.role == UserRole.SHO).all()
        self.assertEqual(len(shos), 3)
        new = self.db.query(User).filter(User.username == "sho_davangerec").one()
        self.assertTrue(verify_password("station-password", new.password_hash))

        # Second run finds nothing left to do
        self.assertEqual(script.create_sho_accounts(self.db, "station-password"), [])

    def test_dry_run_writes_nothing(self):
        created = script.create_sho_accounts(self.db, "pw-pw-pw-pw", dry_run=True)
        self.assertEqual(len(created), 3)
        self.assertEqual(self.db.query(User).count(), 0)

    def test_sp_bootstrap_only_once(self):
        self.assertIsNotNone(script.create_sp_account(self.db, "sp", "sp-password-1"))
        self.assertIsNone(script.create_sp_account(self.db, "sp2", "sp-password-1"))
        self.assertEqual(self.db.query(User).filter(User.role == UserRole.SP).count(), 1)

    def test_sp_dry_run_reports_without_writing(self):
        with self.assertLogs("create_sho_accounts", level="INFO") as logs:
            user = script.create_sp_account(self.db, "sp", "sp-password-1", dry_run=True)

        self.assertEqual(user.username, "sp")
        self.assertEqual(self.db.query(User).count(), 0)
        self.assertEqual(logs.output, ["INFO:create_sho_accounts:Would create SP account sp"])


if __name__ == "__main__":
    unittest.main()
