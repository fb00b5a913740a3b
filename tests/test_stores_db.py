import os
import sys
import unittest
import uuid
from unittest import mock

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import app.db as db
from app.db import _param_summary, get_active_conn, get_conn, transaction
from app.stores_db import DbItemRepository, DbSettingsStore, _table_prefix
from display_settings import DisplaySettings
from item_store import ItemStore
from platform_registry import PlatformRegistry

USE_DB = os.getenv("USE_DB", "0") == "1"
DB_URL = os.getenv("SUPABASE_DB_URL") or os.getenv("DATABASE_URL")


class TestDbHelpers(unittest.TestCase):
    def test_table_prefix_validation(self) -> None:
        with mock.patch.dict(os.environ, {"BUBBLES_TABLE_PREFIX": "wp_"}):
            self.assertEqual(_table_prefix(), "wp_")
            self.assertEqual(DbItemRepository().items_table, "wp_chat_bubble_items")
        with mock.patch.dict(os.environ, {"BUBBLES_TABLE_PREFIX": "x; drop table"}):
            with self.assertRaises(ValueError):
                _table_prefix()
        with self.assertRaises(ValueError):
            DbItemRepository(prefix="bad-prefix")

    def test_param_summary_hides_text(self) -> None:
        summary = _param_summary([b"abc", "+84901234567", 5, None, True])
        self.assertEqual(summary, ["<bytes:3>", "<str:12>", 5, None, True])
        self.assertIsNone(_param_summary(None))


class FakeConn:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1


class FakePool:
    def __init__(self) -> None:
        self.conn = FakeConn()
        self.borrowed = 0
        self.returned = 0

    def getconn(self):
        self.borrowed += 1
        return self.conn

    def putconn(self, conn) -> None:
        self.returned += 1


class TestTransactionBinding(unittest.TestCase):
    def setUp(self) -> None:
        self.pool = FakePool()
        patcher = mock.patch.object(db, "init_pool", return_value=self.pool)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_nested_blocks_share_one_connection(self) -> None:
        self.assertIsNone(get_active_conn())
        with transaction() as outer:
            self.assertIs(get_active_conn(), outer)
            with transaction() as inner, get_conn() as conn:
                self.assertIs(inner, outer)
                self.assertIs(conn, outer)
        self.assertIsNone(get_active_conn())
        self.assertEqual((self.pool.borrowed, self.pool.returned), (1, 1))
        self.assertEqual(self.pool.conn.commits, 1)

    def test_error_rolls_back_and_unbinds(self) -> None:
        with self.assertRaises(RuntimeError):
            with transaction():
                raise RuntimeError("boom")
        self.assertIsNone(get_active_conn())
        self.assertEqual(self.pool.conn.rollbacks, 1)
        self.assertEqual(self.pool.conn.commits, 0)
        self.assertEqual(self.pool.returned, 1)


@unittest.skipUnless(USE_DB and DB_URL, "DB store tests require USE_DB=1 and DATABASE_URL/SUPABASE_DB_URL")
class TestDbItemRepository(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = DbItemRepository(prefix=f"t{uuid.uuid4().hex[:8]}_")
        self.assertTrue(self.repo.ensure_schema())
        self.addCleanup(self.repo.drop_schema)
        self.store = ItemStore(self.repo, PlatformRegistry())

    def test_schema_is_idempotent(self) -> None:
        self.assertFalse(self.repo.ensure_schema())

    def test_item_lifecycle(self) -> None:
        a = self.store.create({"platform_key": "zalo", "label": "Zalo", "contact_value": "0123456789"})["item_id"]
        b = self.store.create({"platform_key": "telegram", "label": "Support", "contact_value": "support_bot"})["item_id"]
        self.assertEqual([i.sort_order for i in self.store.list_all()], [1, 2])

        self.assertTrue(self.store.update(a, {"label": "Zalo OA", "enabled": False})["ok"])
        self.assertEqual(self.store.get_by_id(a).label, "Zalo OA")
        self.assertEqual([i.id for i in self.store.list_all(enabled_only=True)], [b])

        self.assertTrue(self.store.reorder([b, a])["ok"])
        self.assertEqual([i.id for i in self.store.list_all()], [b, a])

        self.assertTrue(self.store.delete(a)["ok"])
        self.assertIsNone(self.store.get_by_id(a))
        self.assertEqual(self.store.data_version, 6)

    def test_settings_store(self) -> None:
        settings = DisplaySettings(DbSettingsStore(self.repo))
        self.assertEqual(settings.get_option("position"), "bottom-right")
        settings.update_options({"position": "top-left", "exclude_pages": [4]})
        self.assertEqual(settings.get_option("position"), "top-left")
        self.assertEqual(settings.get_option("exclude_pages"), [4])


if __name__ == "__main__":
    unittest.main()
