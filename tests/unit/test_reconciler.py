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


from casemonitor.access import AccessConfigurationError, Actor  # noqa: E402
from casemonitor.models import UserRole  # noqa: E402
from casemonitor.reconciler import (  # noqa: E402
    MISSING_KEY_ERROR,
    STORE_ERROR,
    EmptyBatchError,
    RowStatus,
    reconcile,
)
from casemonitor.store import InMemoryCaseStore  # noqa: E402

DAVANGERE = "Davangere City PS"
HARIHAR = "Harihar PS"


def writer(station=DAVANGERE):
    return Actor(role=UserRole.WRITER, home_station=station, user_id="writer-1")


def assert_complete(test, result):
    test.assertEqual(result.inserted + result.updated + len(result.errors), result.total)


class TestReconcile(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryCaseStore()

    def test_writer_mixed_station_batch(self):
        result = reconcile(
            writer(),
            [
                {"policeStation": DAVANGERE, "crimeNumber": "CR/1"},
                {"policeStation": HARIHAR, "crimeNumber": "CR/2"},
            ],
            self.store,
        )

        self.assertEqual(
            result.to_dict(),
            {
                "inserted": 1,
                "updated": 0,
                "errors": [{"row": 2, "error": "Cannot access police station: Harihar PS"}],
                "total": 2,
            },
        )
        self.assertEqual(len(self.store), 1)
        self.assertIsNone(self.store.find_by_natural_key(HARIHAR, "CR/2"))

    def test_access_isolation_independent_of_order(self):
        rows = [
            {"police_station": HARIHAR, "crime_number": "H/1"},
            {"police_station": DAVANGERE, "crime_number": "D/1"},
            {"police_station": HARIHAR, "crime_number": "H/2"},
            {"police_station": DAVANGERE, "crime_number": "D/2"},
        ]
        for batch in (rows, list(reversed(rows))):
            store = InMemoryCaseStore()
            result = reconcile(writer(), batch, store)
            self.assertEqual(result.inserted, 2)
            self.assertEqual(len(result.errors), 2)
            self.assertEqual(
                {c.police_station for c in store.all()}, {DAVANGERE}
            )
            for error in result.errors:
                self.assertEqual(batch[error["row"] - 1]["police_station"], HARIHAR)

    def test_sp_writes_any_station(self):
        sp = Actor(role=UserRole.SP)
        result = reconcile(
            sp,
            [
                {"police_station": DAVANGERE, "crime_number": "1"},
                {"police_station": HARIHAR, "crime_number": "1"},
                {"police_station": "Jagalur PS", "crime_number": "1"},
            ],
            self.store,
        )
        self.assertEqual(result.inserted, 3)
        self.assertEqual(result.errors, [])

    def test_reupload_updates_instead_of_inserting(self):
        rows = [
            {"police_station": DAVANGERE, "crime_number": f"CR/{i}", "court_name": "JMFC"}
            for i in range(1, 4)
        ]
        first = reconcile(writer(), rows, self.store)
        second = reconcile(writer(), rows, self.store)

        self.assertEqual((first.inserted, first.updated), (3, 0))
        self.assertEqual((second.inserted, second.updated), (0, 3))
        self.assertEqual(len(self.store), 3)

    def test_sparse_merge_keeps_unspecified_fields(self):
        reconcile(
            writer(),
            [
                {
                    "police_station": DAVANGERE,
                    "crime_number": "CR/7",
                    "investigatingOfficer": "PSI Ramesh",
                    "courtName": "JMFC Davangere",
                    "totalAccused": 3,
                }
            ],
            self.store,
        )
        result = reconcile(
            writer(),
            [
                {
                    "police_station": DAVANGERE,
                    "crime_number": "CR/7",
                    "courtName": "Principal Sessions Court",
                    "investigatingOfficer": "",
                    "totalAccused": None,
                    "accusedNames": "   ",
                }
            ],
            self.store,
        )

        self.assertEqual(result.updated, 1)
        record = self.store.find_by_natural_key(DAVANGERE, "CR/7")
        self.assertEqual(record.values["court_name"], "Principal Sessions Court")
        self.assertEqual(record.values["investigating_officer"], "PSI Ramesh")
        self.assertEqual(record.values["total_accused"], 3)
        self.assertNotIn("accused_names", record.values)

    def test_update_never_touches_identity(self):
        reconcile(writer(), [{"police_station": DAVANGERE, "crime_number": "CR/8"}], self.store)
        record = self.store.find_by_natural_key(DAVANGERE, "CR/8")
        result = reconcile(
            writer(),
            [{"police_station": DAVANGERE, "crime_number": "CR/8", "slNo": "12"}],
            self.store,
        )
        self.assertEqual(result.rows[0].case_id, record.id)
        self.assertEqual(record.values["police_station"], DAVANGERE)
        self.assertEqual(record.values["crime_number"], "CR/8")
        self.assertEqual(record.values["sl_no"], "12")

    def test_padded_station_is_not_the_home_station(self):
        result = reconcile(
            writer(),
            [{"policeStation": f" {DAVANGERE} ", "crimeNumber": "CR/1"}],
            self.store,
        )
        self.assertEqual(result.inserted, 0)
        self.assertEqual(
            result.errors,
            [{"row": 1, "error": f"Cannot access police station:  {DAVANGERE} "}],
        )
        self.assertEqual(len(self.store), 0)

    def test_sp_row_is_stored_under_station_as_sent(self):
        sp = Actor(role=UserRole.SP, home_station="District HQ", user_id="sp-1")
        reconcile(sp, [{"policeStation": "Harihar PS ", "crimeNumber": " 7"}], self.store)

        self.assertIsNotNone(self.store.find_by_natural_key("Harihar PS ", " 7"))
        self.assertIsNone(self.store.find_by_natural_key(HARIHAR, "7"))

    def test_reupload_keeps_stored_status(self):
        reconcile(writer(), [{"police_station": DAVANGERE, "crime_number": "CR/12"}], self.store)
        result = reconcile(
            writer(),
            [{"police_station": DAVANGERE, "crime_number": "CR/12", "status": "approved", "slNo": "5"}],
            self.store,
        )
        record = self.store.find_by_natural_key(DAVANGERE, "CR/12")

        self.assertEqual(result.updated, 1)
        self.assertEqual(record.values["status"], "draft")
        self.assertEqual(record.values["sl_no"], "5")

    def test_status_is_taken_on_insert(self):
        reconcile(
            writer(),
            [{"police_station": DAVANGERE, "crime_number": "CR/13", "status": "pending_approval"}],
            self.store,
        )
        record = self.store.find_by_natural_key(DAVANGERE, "CR/13")
        self.assertEqual(record.values["status"], "pending_approval")

    def test_insert_defaults(self):
        result = reconcile(
            writer(), [{"police_station": DAVANGERE, "crime_number": "CR/9"}], self.store
        )
        record = self.store.find_by_natural_key(DAVANGERE, "CR/9")

        self.assertEqual(result.rows[0].status, RowStatus.INSERTED)
        self.assertEqual(record.values["status"], "draft")
        self.assertEqual(record.values["hearings"], [])
        self.assertEqual(record.values["accused_convictions"], [])
        self.assertEqual(
            record.values["witness_details"]["complainant_witness"],
            {"supported": 0, "hostile": 0},
        )
        self.assertEqual(len(record.values["witness_details"]), 5)
        self.assertFalse(record.values["higher_court_details"]["proceedings_pending"])

    def test_invalid_row_does_not_stop_batch(self):
        rows = [
            {"police_station": DAVANGERE, "crime_number": "1"},
            {"police_station": DAVANGERE, "crime_number": "2"},
            {"police_station": DAVANGERE},
            {"police_station": DAVANGERE, "crime_number": "4"},
            {"police_station": DAVANGERE, "crime_number": "5"},
        ]
        result = reconcile(writer(), rows, self.store)

        self.assertEqual(result.inserted, 4)
        self.assertEqual(result.errors, [{"row": 3, "error": MISSING_KEY_ERROR}])
        assert_complete(self, result)

    def test_blank_identity_is_rejected(self):
        result = reconcile(
            writer(),
            [
                {"police_station": "  ", "crime_number": "1"},
                {"police_station": DAVANGERE, "crime_number": ""},
                "not a row",
                None,
            ],
            self.store,
        )
        self.assertEqual(result.inserted, 0)
        self.assertEqual([e["row"] for e in result.errors], [1, 2, 3, 4])
        self.assertTrue(all(e["error"] == MISSING_KEY_ERROR for e in result.errors))

    def test_bad_field_type_is_row_error(self):
        result = reconcile(
            writer(),
            [
                {"police_station": DAVANGERE, "crime_number": "1", "total_accused": "many"},
                {"police_station": DAVANGERE, "crime_number": "2", "total_accused": "2"},
            ],
            self.store,
        )
        self.assertEqual(result.inserted, 1)
        self.assertEqual(result.errors[0]["row"], 1)
        self.assertTrue(result.errors[0]["error"].startswith("Invalid value for"))
        self.assertEqual(
            self.store.find_by_natural_key(DAVANGERE, "2").values["total_accused"], 2
        )

    def test_numeric_crime_number_is_text(self):
        reconcile(writer(), [{"police_station": DAVANGERE, "crime_number": 45}], self.store)
        self.assertIsNotNone(self.store.find_by_natural_key(DAVANGERE, "45"))

    def test_store_failure_reported_generically(self):
        store = InMemoryCaseStore(fail_on={"CR/2"})
        result = reconcile(
            writer(),
            [
                {"police_station": DAVANGERE, "crime_number": "CR/1"},
                {"police_station": DAVANGERE, "crime_number": "CR/2"},
                {"police_station": DAVANGERE, "crime_number": "CR/3"},
            ],
            store,
        )
        self.assertEqual(result.inserted, 2)
        self.assertEqual(result.errors, [{"row": 2, "error": STORE_ERROR}])
        assert_complete(self, result)

    def test_duplicate_rows_in_one_batch(self):
        result = reconcile(
            writer(),
            [
                {"police_station": DAVANGERE, "crime_number": "CR/5", "court_name": "A"},
                {"police_station": DAVANGERE, "crime_number": "CR/5", "court_name": "B"},
            ],
            self.store,
        )
        self.assertEqual((result.inserted, result.updated), (1, 1))
        self.assertEqual(
            self.store.find_by_natural_key(DAVANGERE, "CR/5").values["court_name"], "B"
        )

    def test_empty_or_non_list_batch_is_fatal(self):
        for batch in ([], None, "cases", {"police_station": DAVANGERE}):
            with self.assertRaises(EmptyBatchError) as ctx:
                reconcile(writer(), batch, self.store)
            self.assertEqual(str(ctx.exception), "No cases provided")
        self.assertEqual(len(self.store), 0)

    def test_unknown_role_fails_before_any_row(self):
        with self.assertRaises(AccessConfigurationError):
            reconcile(
                Actor(role="Constable", home_station=DAVANGERE),
                [{"police_station": DAVANGERE, "crime_number": "1"}],
                self.store,
            )
        self.assertEqual(len(self.store), 0)

    def test_created_by_is_recorded_on_insert(self):
        reconcile(
            writer(),
            [{"police_station": DAVANGERE, "crime_number": "CR/11"}],
            self.store,
            created_by="user-42",
        )
        record = self.store.find_by_natural_key(DAVANGERE, "CR/11")
        self.assertEqual(record.values["created_by"], "user-42")


if __name__ == "__main__":
    unittest.main()
