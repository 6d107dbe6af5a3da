import os
import unittest

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from services.ledger import PositionState
from services.position_store import PositionStore, StoreConflict
from tests.db_helpers import make_session_factory


def _state(asset="bitcoin", qty=1.0, cost=100.0, **kw):
    return PositionState(owner="user-1", asset=asset, quantity=qty, cost_basis=cost, **kw)


class PositionStoreTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()
        self.store = PositionStore(self.db)

    def tearDown(self):
        self.db.close()

    def test_get_missing_returns_none(self):
        self.assertIsNone(self.store.get("user-1", "bitcoin"))

    def test_insert_then_get(self):
        saved = self.store.put(
            "user-1", "bitcoin",
            _state(name="Bitcoin", symbol="BTC", image="btc.png"),
            expected_version=None,
        )
        self.assertEqual(saved.version, 1)

        loaded = self.store.get("user-1", "bitcoin")
        self.assertEqual(loaded.quantity, 1.0)
        self.assertEqual(loaded.cost_basis, 100.0)
        self.assertEqual(loaded.name, "Bitcoin")
        self.assertEqual(loaded.symbol, "BTC")
        self.assertEqual(loaded.version, 1)

    def test_update_bumps_version(self):
        self.store.put("user-1", "bitcoin", _state(), expected_version=None)
        saved = self.store.put("user-1", "bitcoin", _state(qty=3.0, cost=250.0), expected_version=1)

        self.assertEqual(saved.version, 2)
        loaded = self.store.get("user-1", "bitcoin")
        self.assertEqual((loaded.quantity, loaded.cost_basis, loaded.version), (3.0, 250.0, 2))

    def test_stale_update_conflicts_and_leaves_row(self):
        self.store.put("user-1", "bitcoin", _state(), expected_version=None)
        self.store.put("user-1", "bitcoin", _state(qty=2.0, cost=200.0), expected_version=1)

        with self.assertRaises(StoreConflict):
            self.store.put("user-1", "bitcoin", _state(qty=9.0, cost=900.0), expected_version=1)

        loaded = self.store.get("user-1", "bitcoin")
        self.assertEqual((loaded.quantity, loaded.version), (2.0, 2))

    def test_duplicate_insert_conflicts(self):
        self.store.put("user-1", "bitcoin", _state(), expected_version=None)
        with self.assertRaises(StoreConflict):
            self.store.put("user-1", "bitcoin", _state(qty=5.0), expected_version=None)

        self.assertEqual(self.store.get("user-1", "bitcoin").quantity, 1.0)

    def test_same_asset_for_different_owners(self):
        self.store.put("user-1", "bitcoin", _state(), expected_version=None)
        self.store.put("user-2", "bitcoin", _state(qty=7.0), expected_version=None)

        self.assertEqual(self.store.get("user-2", "bitcoin").quantity, 7.0)
        self.assertEqual(self.store.get("user-2", "bitcoin").owner, "user-2")
        self.assertEqual([p.asset for p in self.store.list_by_owner("user-1")], ["bitcoin"])

    def test_list_by_owner_in_insert_order(self):
        for asset in ("solana", "bitcoin", "ethereum"):
            self.store.put("user-1", asset, _state(asset=asset), expected_version=None)

        self.assertEqual(
            [p.asset for p in self.store.list_by_owner("user-1")],
            ["solana", "bitcoin", "ethereum"],
        )
        self.assertEqual(self.store.list_by_owner("nobody"), [])

    def test_conditional_delete(self):
        self.store.put("user-1", "bitcoin", _state(), expected_version=None)

        with self.assertRaises(StoreConflict):
            self.store.delete("user-1", "bitcoin", expected_version=5)
        self.assertIsNotNone(self.store.get("user-1", "bitcoin"))

        self.assertTrue(self.store.delete("user-1", "bitcoin", expected_version=1))
        self.assertIsNone(self.store.get("user-1", "bitcoin"))

    def test_unconditional_delete(self):
        self.assertFalse(self.store.delete("user-1", "bitcoin"))
        self.store.put("user-1", "bitcoin", _state(), expected_version=None)
        self.assertTrue(self.store.delete("user-1", "bitcoin"))


if __name__ == "__main__":
    unittest.main()
