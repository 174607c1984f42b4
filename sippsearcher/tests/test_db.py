import asyncio
import os
import tempfile
import unittest
from unittest.mock import patch

from sqlalchemy import text

from sippsearcher.db import InMemoryDbClient, SqliteDbClient, StorageError
from sippsearcher.geo import haversine_km


class StalledSession:
    """Session stand-in whose connection never arrives."""

    async def __aenter__(self):
        await asyncio.sleep(10)

    async def __aexit__(self, *exc_info):
        return False


class DbClientContract:
    """Behaviour every backend must share. Mixed into concrete test cases."""

    async def make_client(self):
        raise NotImplementedError

    async def asyncSetUp(self):
        self.db = await self.make_client()

    async def asyncTearDown(self):
        await self.db.close()

    async def test_visitor_counter_starts_at_1337(self):
        self.assertEqual(await self.db.get_visitor_count(), 1337)
        self.assertEqual(await self.db.increment_visitor_count(), 1338)
        self.assertEqual(await self.db.increment_visitor_count(), 1339)
        self.assertEqual(await self.db.increment_visitor_count(), 1340)
        self.assertEqual(await self.db.get_visitor_count(), 1340)

    async def test_list_stores_orders_by_name(self):
        await self.db.add_store("Wawa", "789 Pine Rd", 40.7282, -74.0776, None)
        await self.db.add_store("7-Eleven", "123 Main St", 40.7128, -74.0060, "(555) 123-4567")
        await self.db.add_store("Circle K", "456 Oak Ave", 40.7580, -73.9855)
        stores = await self.db.list_stores()
        self.assertEqual([s.name for s in stores], ["7-Eleven", "Circle K", "Wawa"])
        self.assertEqual(stores[0].phone, "(555) 123-4567")
        self.assertIsNone(stores[2].phone)
        self.assertIsNotNone(stores[0].created_at.tzinfo)
        self.assertEqual(await self.db.count_stores(), 3)

    async def test_add_store_does_not_deduplicate(self):
        first = await self.db.add_store("Wawa", "789 Pine Rd", 40.7282, -74.0776)
        second = await self.db.add_store("Wawa", "789 Pine Rd", 40.7282, -74.0776)
        self.assertNotEqual(first, second)
        self.assertEqual(len(await self.db.list_stores()), 2)

    async def test_find_stores_near_sorted_with_distance(self):
        await self.db.add_store("Circle K", "456 Oak Ave", 40.7580, -73.9855)
        await self.db.add_store("7-Eleven", "123 Main St", 40.7128, -74.0060)
        await self.db.add_store("Philly Wawa", "1 Market St", 39.9526, -75.1652)

        stores = await self.db.find_stores_near(40.7128, -74.0060, 10)
        self.assertEqual([s.name for s in stores], ["7-Eleven", "Circle K"])
        self.assertEqual(stores[0].distance, 0.0)
        self.assertAlmostEqual(
            stores[1].distance,
            haversine_km(40.7128, -74.0060, 40.7580, -73.9855),
            places=6,
        )
        self.assertEqual(stores[1].as_dict()["distance"], stores[1].distance)

    async def test_find_stores_near_excludes_boundary(self):
        await self.db.add_store("Circle K", "456 Oak Ave", 40.7580, -73.9855)
        exact = haversine_km(40.7128, -74.0060, 40.7580, -73.9855)
        self.assertEqual(await self.db.find_stores_near(40.7128, -74.0060, exact), [])
        self.assertEqual(
            len(await self.db.find_stores_near(40.7128, -74.0060, exact + 0.001)), 1
        )

    async def test_upsert_keeps_one_row_per_key(self):
        store_id = await self.db.add_store("7-Eleven", "123 Main St", 40.7128, -74.0060)
        await self.db.upsert_inventory(
            store_id, "monster-original", "16oz", 2.99, True, "Store Manager"
        )
        first = (await self.db.get_store_inventory(store_id))[0]
        await asyncio.sleep(0.01)
        await self.db.upsert_inventory(
            store_id, "monster-original", "16oz", 2.99, True, "Store Manager"
        )
        items = await self.db.get_store_inventory(store_id)
        self.assertEqual(len(items), 1)
        self.assertGreater(items[0].last_updated, first.last_updated)

    async def test_upsert_replaces_mutable_fields(self):
        store_id = await self.db.add_store("7-Eleven", "123 Main St", 40.7128, -74.0060)
        await self.db.upsert_inventory(
            store_id, "monster-original", "16oz", 2.99, True, "Store Manager",
            "/uploads/a.jpg",
        )
        await self.db.upsert_inventory(
            store_id, "monster-original", "16oz", None, False, None
        )
        await self.db.upsert_inventory(
            store_id, "monster-original", "24oz", 3.99, True, "Night Shift"
        )
        items = {item.size: item for item in await self.db.get_store_inventory(store_id)}
        self.assertEqual(set(items), {"16oz", "24oz"})
        self.assertIsNone(items["16oz"].price)
        self.assertFalse(items["16oz"].in_stock)
        self.assertIsNone(items["16oz"].updated_by)
        self.assertIsNone(items["16oz"].photo_path)
        self.assertEqual(items["24oz"].price, 3.99)
        self.assertTrue(items["24oz"].in_stock)

    async def test_inventory_newest_first(self):
        store_id = await self.db.add_store("Wawa", "789 Pine Rd", 40.7282, -74.0776)
        await self.db.upsert_inventory(store_id, "monster-original", "16oz", 3.09, True, None)
        await asyncio.sleep(0.01)
        await self.db.upsert_inventory(store_id, "monster-ultra-zero", "16oz", 3.09, True, None)
        await asyncio.sleep(0.01)
        await self.db.upsert_inventory(store_id, "monster-original", "16oz", 3.19, True, None)
        items = await self.db.get_store_inventory(store_id)
        self.assertEqual(
            [item.drink_id for item in items],
            ["monster-original", "monster-ultra-zero"],
        )
        self.assertEqual(items[0].price, 3.19)

    async def test_inventory_for_unknown_store_is_empty(self):
        self.assertEqual(await self.db.get_store_inventory(9999), [])

    async def test_writes_against_unknown_ids_fail(self):
        with self.assertRaises(StorageError):
            await self.db.upsert_inventory(9999, "monster-original", "16oz", 2.99, True, None)
        with self.assertRaises(StorageError):
            await self.db.add_verification(9999, "192.168.1.20")
        self.assertEqual(await self.db.get_store_inventory(9999), [])

    async def test_verification_count_matches_calls(self):
        store_id = await self.db.add_store("QuikTrip", "321 Elm St", 40.7505, -73.9934)
        verified = await self.db.upsert_inventory(
            store_id, "monster-ultra-black", "16oz", 2.99, False, "QT Employee"
        )
        untouched = await self.db.upsert_inventory(
            store_id, "monster-ultra-zero", "24oz", 3.99, True, "QT Employee"
        )
        for _ in range(3):
            await self.db.add_verification(verified, "192.168.1.20")
        counts = {
            item.id: item.verification_count
            for item in await self.db.get_store_inventory(store_id)
        }
        self.assertEqual(counts[verified], 3)
        self.assertEqual(counts[untouched], 0)

    async def test_guestbook_newest_first(self):
        first = await self.db.add_guestbook_entry("Ana", "Found Mango Loco!")
        await asyncio.sleep(0.01)
        second = await self.db.add_guestbook_entry("Ben", "Ultra Red restocked")
        entries = await self.db.get_guestbook_entries()
        self.assertEqual([e.id for e in entries], [second, first])
        self.assertEqual(entries[0].name, "Ben")
        self.assertEqual(entries[0].message, "Ultra Red restocked")


class InMemoryDbClientTests(DbClientContract, unittest.IsolatedAsyncioTestCase):
    async def make_client(self):
        return InMemoryDbClient(seed=False)

    async def test_default_client_is_seeded(self):
        db = InMemoryDbClient()
        stores = await db.list_stores()
        self.assertEqual(len(stores), 5)
        seven_eleven = next(s for s in stores if s.name == "7-Eleven")
        self.assertEqual(len(await db.get_store_inventory(seven_eleven.id)), 4)
        self.assertEqual(await db.get_visitor_count(), 1337)

    async def test_reset_clears_state(self):
        db = InMemoryDbClient()
        await db.increment_visitor_count()
        await db.add_guestbook_entry("Ana", "hi")
        db.reset()
        self.assertEqual(await db.list_stores(), [])
        self.assertEqual(await db.get_guestbook_entries(), [])
        self.assertEqual(await db.get_visitor_count(), 1337)


class SqliteDbClientTests(DbClientContract, unittest.IsolatedAsyncioTestCase):
    """Runs the shared contract against a throwaway SQLite file."""

    async def make_client(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, "sippsearcher.db")
        db = SqliteDbClient(self.path)
        await db.init_schema()
        return db

    async def asyncTearDown(self):
        await super().asyncTearDown()
        self.tmpdir.cleanup()

    async def test_init_schema_is_idempotent_and_persistent(self):
        await self.db.increment_visitor_count()
        store_id = await self.db.add_store("Speedway", "654 Maple Dr", 40.7614, -73.9776)
        await self.db.init_schema()
        self.assertEqual(await self.db.get_visitor_count(), 1338)

        reopened = SqliteDbClient(self.path)
        try:
            await reopened.init_schema()
            self.assertEqual(await reopened.get_visitor_count(), 1338)
            stores = await reopened.list_stores()
            self.assertEqual([s.id for s in stores], [store_id])
        finally:
            await reopened.close()

    async def test_upsert_reuses_row_identity(self):
        store_id = await self.db.add_store("7-Eleven", "123 Main St", 40.7128, -74.0060)
        first = await self.db.upsert_inventory(store_id, "monster-original", "16oz", 2.99, True, None)
        second = await self.db.upsert_inventory(store_id, "monster-original", "16oz", 3.09, True, None)
        self.assertEqual(first, second)

    async def test_driver_errors_become_storage_errors(self):
        async with self.db.engine.begin() as conn:
            await conn.execute(text("DROP TABLE verifications"))
            await conn.execute(text("DROP TABLE inventory"))
            await conn.execute(text("DROP TABLE stores"))
        with self.assertRaisesRegex(StorageError, "stores"):
            await self.db.list_stores()

    async def test_slow_calls_time_out(self):
        self.db.timeout_seconds = 0.05
        with patch.object(self.db, "Session", StalledSession):
            with self.assertRaisesRegex(StorageError, "list_stores timed out after 0.05s"):
                await self.db.list_stores()


if __name__ == "__main__":
    unittest.main()
