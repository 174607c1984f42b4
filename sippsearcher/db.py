"""
Database abstraction for Postgres, an embedded SQLite file and an in-memory
fallback.
"""

from __future__ import annotations

import asyncio
import functools
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    func,
    literal,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from sippsearcher import geo
from sippsearcher.sample_data import SAMPLE_INVENTORY, SAMPLE_STORES


DEFAULT_VISITOR_COUNT = 1337
VISITOR_ROW_ID = 1


class StorageError(RuntimeError):
    """Raised when a backend call fails or times out."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DbClient(Protocol):
    """Interface for database access."""

    kind: str

    async def list_stores(self) -> list["StoreRecord"]:
        ...

    async def find_stores_near(
        self, lat: float, lng: float, radius_km: float
    ) -> list["StoreRecord"]:
        ...

    async def add_store(
        self,
        name: str,
        address: str,
        lat: float,
        lng: float,
        phone: Optional[str] = None,
    ) -> int:
        ...

    async def count_stores(self) -> int:
        ...

    async def get_store_inventory(self, store_id: int) -> list["InventoryRecord"]:
        ...

    async def upsert_inventory(
        self,
        store_id: int,
        drink_id: str,
        size: str,
        price: Optional[float],
        in_stock: bool,
        updated_by: Optional[str],
        photo_path: Optional[str] = None,
    ) -> int:
        ...

    async def add_verification(self, inventory_id: int, user_ip: Optional[str]) -> None:
        ...

    async def increment_visitor_count(self) -> int:
        ...

    async def get_visitor_count(self) -> int:
        ...

    async def get_guestbook_entries(self) -> list["GuestbookEntryRecord"]:
        ...

    async def add_guestbook_entry(self, name: str, message: str) -> int:
        ...

    async def close(self) -> None:
        ...


@dataclass
class StoreRecord:
    id: int
    name: str
    address: str
    latitude: float
    longitude: float
    phone: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    distance: Optional[float] = None

    def as_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "phone": self.phone,
            "created_at": self.created_at,
        }
        if self.distance is not None:
            data["distance"] = self.distance
        return data


@dataclass
class InventoryRecord:
    id: int
    store_id: int
    drink_id: str
    size: str
    price: Optional[float]
    in_stock: bool
    updated_by: Optional[str] = None
    photo_path: Optional[str] = None
    last_updated: datetime = field(default_factory=_utcnow)
    verification_count: int = 0

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "drink_id": self.drink_id,
            "size": self.size,
            "price": self.price,
            "in_stock": self.in_stock,
            "last_updated": self.last_updated,
            "updated_by": self.updated_by,
            "photo_path": self.photo_path,
            "verification_count": self.verification_count,
        }


@dataclass
class VerificationRecord:
    id: int
    inventory_id: int
    user_ip: Optional[str]
    verified_at: datetime = field(default_factory=_utcnow)


@dataclass
class GuestbookEntryRecord:
    id: int
    name: str
    message: str
    created_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "message": self.message,
            "created_at": self.created_at,
        }


class InMemoryDbClient:
    """
    Process-local database for development and tests.

    Everything is lost on restart. Concurrent upserts of the same key are
    last-write-wins.
    """

    kind = "memory"

    def __init__(self, seed: bool = True):
        self.stores: Dict[int, StoreRecord] = {}
        self.inventory: Dict[int, InventoryRecord] = {}
        self.inventory_keys: Dict[tuple[int, str, str], int] = {}
        self.verifications: list[VerificationRecord] = []
        self.guestbook: Dict[int, GuestbookEntryRecord] = {}
        self.visitor_count = DEFAULT_VISITOR_COUNT
        self._last_ids: Counter = Counter()
        if seed:
            self._seed()

    def _next_id(self, table: str) -> int:
        self._last_ids[table] += 1
        return self._last_ids[table]

    def _seed(self) -> None:
        store_ids = [
            self._insert_store(
                s["name"], s["address"], s["latitude"], s["longitude"], s["phone"]
            )
            for s in SAMPLE_STORES
        ]
        for index, drink_id, size, price, in_stock, updated_by in SAMPLE_INVENTORY:
            self._upsert(store_ids[index], drink_id, size, price, in_stock, updated_by, None)

    def reset(self, seed: bool = False) -> None:
        """Clear all stored data (useful in tests)."""
        self.stores.clear()
        self.inventory.clear()
        self.inventory_keys.clear()
        self.verifications.clear()
        self.guestbook.clear()
        self.visitor_count = DEFAULT_VISITOR_COUNT
        self._last_ids.clear()
        if seed:
            self._seed()

    def _insert_store(
        self,
        name: str,
        address: str,
        lat: float,
        lng: float,
        phone: Optional[str],
    ) -> int:
        store_id = self._next_id("stores")
        self.stores[store_id] = StoreRecord(
            id=store_id,
            name=name,
            address=address,
            latitude=lat,
            longitude=lng,
            phone=phone,
        )
        return store_id

    def _upsert(
        self,
        store_id: int,
        drink_id: str,
        size: str,
        price: Optional[float],
        in_stock: bool,
        updated_by: Optional[str],
        photo_path: Optional[str],
    ) -> int:
        key = (store_id, drink_id, size)
        inventory_id = self.inventory_keys.get(key)
        if inventory_id is None:
            inventory_id = self._next_id("inventory")
            self.inventory_keys[key] = inventory_id
        self.inventory[inventory_id] = InventoryRecord(
            id=inventory_id,
            store_id=store_id,
            drink_id=drink_id,
            size=size,
            price=price,
            in_stock=in_stock,
            updated_by=updated_by,
            photo_path=photo_path,
            last_updated=_utcnow(),
        )
        return inventory_id

    async def list_stores(self) -> list[StoreRecord]:
        return sorted(self.stores.values(), key=lambda s: (s.name, s.id))

    async def find_stores_near(
        self, lat: float, lng: float, radius_km: float
    ) -> list[StoreRecord]:
        matches = geo.stores_within(self.stores.values(), lat, lng, radius_km)
        return [replace(store, distance=distance) for store, distance in matches]

    async def add_store(
        self,
        name: str,
        address: str,
        lat: float,
        lng: float,
        phone: Optional[str] = None,
    ) -> int:
        return self._insert_store(name, address, lat, lng, phone)

    async def count_stores(self) -> int:
        return len(self.stores)

    async def get_store_inventory(self, store_id: int) -> list[InventoryRecord]:
        counts = Counter(v.inventory_id for v in self.verifications)
        items = [
            replace(item, verification_count=counts[item.id])
            for item in self.inventory.values()
            if item.store_id == store_id
        ]
        items.sort(key=lambda item: (item.last_updated, item.id), reverse=True)
        return items

    async def upsert_inventory(
        self,
        store_id: int,
        drink_id: str,
        size: str,
        price: Optional[float],
        in_stock: bool,
        updated_by: Optional[str],
        photo_path: Optional[str] = None,
    ) -> int:
        if store_id not in self.stores:
            raise StorageError(f"Unknown store id {store_id}")
        return self._upsert(
            store_id, drink_id, size, price, in_stock, updated_by, photo_path
        )

    async def add_verification(self, inventory_id: int, user_ip: Optional[str]) -> None:
        if inventory_id not in self.inventory:
            raise StorageError(f"Unknown inventory id {inventory_id}")
        self.verifications.append(
            VerificationRecord(
                id=self._next_id("verifications"),
                inventory_id=inventory_id,
                user_ip=user_ip,
            )
        )

    async def increment_visitor_count(self) -> int:
        self.visitor_count += 1
        return self.visitor_count

    async def get_visitor_count(self) -> int:
        return self.visitor_count

    async def get_guestbook_entries(self) -> list[GuestbookEntryRecord]:
        return sorted(
            self.guestbook.values(),
            key=lambda e: (e.created_at, e.id),
            reverse=True,
        )

    async def add_guestbook_entry(self, name: str, message: str) -> int:
        entry_id = self._next_id("guestbook")
        self.guestbook[entry_id] = GuestbookEntryRecord(
            id=entry_id, name=name, message=message
        )
        return entry_id

    async def close(self) -> None:
        return None


def _storage_call(method):
    """Bound a backend call by the client's timeout and wrap driver errors."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await asyncio.wait_for(
                method(self, *args, **kwargs), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise StorageError(
                f"{method.__name__} timed out after {self.timeout_seconds}s"
            ) from exc
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(str(exc)) from exc

    return wrapper


def _to_store_record(row, distance: Optional[float] = None) -> StoreRecord:
    return StoreRecord(
        id=row.id,
        name=row.name,
        address=row.address,
        latitude=row.latitude,
        longitude=row.longitude,
        phone=row.phone,
        created_at=_as_utc(row.created_at),
        distance=distance,
    )


def _to_inventory_record(row: "InventoryRow", verification_count: int) -> InventoryRecord:
    return InventoryRecord(
        id=row.id,
        store_id=row.store_id,
        drink_id=row.drink_id,
        size=row.size,
        price=row.price,
        in_stock=bool(row.in_stock),
        updated_by=row.updated_by,
        photo_path=row.photo_path,
        last_updated=_as_utc(row.last_updated),
        verification_count=verification_count or 0,
    )


def haversine_expression(lat: float, lng: float):
    """SQL expression for the distance in km from (lat, lng) to each store."""
    lat_param = literal(lat, Float)
    lng_param = literal(lng, Float)
    d_lat = func.radians(StoreRow.latitude - lat_param, type_=Float)
    d_lng = func.radians(StoreRow.longitude - lng_param, type_=Float)
    a = func.power(func.sin(d_lat / 2, type_=Float), 2, type_=Float) + func.cos(
        func.radians(lat_param, type_=Float), type_=Float
    ) * func.cos(func.radians(StoreRow.latitude, type_=Float), type_=Float) * func.power(
        func.sin(d_lng / 2, type_=Float), 2, type_=Float
    )
    a = func.least(a, 1.0, type_=Float)
    return (
        2
        * geo.EARTH_RADIUS_KM
        * func.atan2(func.sqrt(a, type_=Float), func.sqrt(1 - a, type_=Float), type_=Float)
    )


def stores_near_statement(lat: float, lng: float, radius_km: float):
    """
    Stores strictly inside the radius, nearest first.

    The distance is computed once in a subquery and reused for the filter and
    the ordering.
    """
    distance = haversine_expression(lat, lng).label("distance")
    ranked = select(StoreRow, distance).subquery("ranked")
    return (
        select(ranked)
        .where(ranked.c.distance < radius_km)
        .order_by(ranked.c.distance.asc(), ranked.c.id.asc())
    )


def upsert_inventory_statement(insert, values: dict):
    """
    INSERT ... ON CONFLICT (store_id, drink_id, size) DO UPDATE for the given
    dialect ``insert`` construct, returning the row id.
    """
    stmt = insert(InventoryRow).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=["store_id", "drink_id", "size"],
        set_={
            "price": stmt.excluded.price,
            "in_stock": stmt.excluded.in_stock,
            "updated_by": stmt.excluded.updated_by,
            "photo_path": stmt.excluded.photo_path,
            "last_updated": stmt.excluded.last_updated,
        },
    ).returning(InventoryRow.id)


class SqlDbClient:
    """
    SQLAlchemy asyncio implementation shared by the SQLite and Postgres
    clients. Subclasses pick the dialect ``insert`` used for upserts.
    """

    kind = "sql"
    _insert = None

    def __init__(self, database_url: str, *, timeout_seconds: float = 10.0, **engine_kwargs):
        if not database_url:
            raise ValueError("database_url is required for SqlDbClient")
        self.timeout_seconds = timeout_seconds
        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.Session = async_sessionmaker(self.engine, expire_on_commit=False)

    @_storage_call
    async def init_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with self.Session() as session:
            stmt = (
                self._insert(VisitorRow)
                .values(id=VISITOR_ROW_ID, count=DEFAULT_VISITOR_COUNT)
                .on_conflict_do_nothing(index_elements=["id"])
            )
            await session.execute(stmt)
            await session.commit()

    @_storage_call
    async def list_stores(self) -> list[StoreRecord]:
        async with self.Session() as session:
            stmt = select(StoreRow).order_by(StoreRow.name.asc(), StoreRow.id.asc())
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_store_record(row) for row in rows]

    @_storage_call
    async def find_stores_near(
        self, lat: float, lng: float, radius_km: float
    ) -> list[StoreRecord]:
        stores = await self.list_stores()
        matches = geo.stores_within(stores, lat, lng, radius_km)
        return [replace(store, distance=distance) for store, distance in matches]

    @_storage_call
    async def add_store(
        self,
        name: str,
        address: str,
        lat: float,
        lng: float,
        phone: Optional[str] = None,
    ) -> int:
        async with self.Session() as session:
            row = StoreRow(
                name=name,
                address=address,
                latitude=lat,
                longitude=lng,
                phone=phone,
                created_at=_utcnow(),
            )
            session.add(row)
            await session.commit()
            return row.id

    @_storage_call
    async def count_stores(self) -> int:
        async with self.Session() as session:
            stmt = select(func.count()).select_from(StoreRow)
            return (await session.execute(stmt)).scalar_one()

    @_storage_call
    async def get_store_inventory(self, store_id: int) -> list[InventoryRecord]:
        verification_count = (
            select(func.count(VerificationRow.id))
            .where(VerificationRow.inventory_id == InventoryRow.id)
            .correlate(InventoryRow)
            .scalar_subquery()
        )
        stmt = (
            select(InventoryRow, verification_count.label("verification_count"))
            .where(InventoryRow.store_id == store_id)
            .order_by(InventoryRow.last_updated.desc(), InventoryRow.id.desc())
        )
        async with self.Session() as session:
            result = await session.execute(stmt)
            return [_to_inventory_record(row, count) for row, count in result.all()]

    @_storage_call
    async def upsert_inventory(
        self,
        store_id: int,
        drink_id: str,
        size: str,
        price: Optional[float],
        in_stock: bool,
        updated_by: Optional[str],
        photo_path: Optional[str] = None,
    ) -> int:
        stmt = upsert_inventory_statement(
            self._insert,
            {
                "store_id": store_id,
                "drink_id": drink_id,
                "size": size,
                "price": price,
                "in_stock": in_stock,
                "updated_by": updated_by,
                "photo_path": photo_path,
                "last_updated": _utcnow(),
            },
        )
        async with self.Session() as session:
            inventory_id = (await session.execute(stmt)).scalar_one()
            await session.commit()
            return inventory_id

    @_storage_call
    async def add_verification(self, inventory_id: int, user_ip: Optional[str]) -> None:
        async with self.Session() as session:
            session.add(
                VerificationRow(
                    inventory_id=inventory_id,
                    user_ip=user_ip,
                    verified_at=_utcnow(),
                )
            )
            await session.commit()

    @_storage_call
    async def increment_visitor_count(self) -> int:
        stmt = (
            update(VisitorRow)
            .where(VisitorRow.id == VISITOR_ROW_ID)
            .values(count=VisitorRow.count + 1)
            .returning(VisitorRow.count)
            .execution_options(synchronize_session=False)
        )
        async with self.Session() as session:
            count = (await session.execute(stmt)).scalar_one_or_none()
            if count is None:
                count = DEFAULT_VISITOR_COUNT + 1
                session.add(VisitorRow(id=VISITOR_ROW_ID, count=count))
            await session.commit()
            return count

    @_storage_call
    async def get_visitor_count(self) -> int:
        async with self.Session() as session:
            row = await session.get(VisitorRow, VISITOR_ROW_ID)
            return row.count if row else DEFAULT_VISITOR_COUNT

    @_storage_call
    async def get_guestbook_entries(self) -> list[GuestbookEntryRecord]:
        async with self.Session() as session:
            stmt = select(GuestbookRow).order_by(
                GuestbookRow.created_at.desc(), GuestbookRow.id.desc()
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [
                GuestbookEntryRecord(
                    id=row.id,
                    name=row.name,
                    message=row.message,
                    created_at=_as_utc(row.created_at),
                )
                for row in rows
            ]

    @_storage_call
    async def add_guestbook_entry(self, name: str, message: str) -> int:
        async with self.Session() as session:
            row = GuestbookRow(name=name, message=message, created_at=_utcnow())
            session.add(row)
            await session.commit()
            return row.id

    async def close(self) -> None:
        await self.engine.dispose()


class SqliteDbClient(SqlDbClient):
    """Embedded single-file database."""

    kind = "sqlite"
    _insert = staticmethod(sqlite.insert)

    def __init__(self, path: str, *, timeout_seconds: float = 10.0):
        self.path = path
        super().__init__(
            f"sqlite+aiosqlite:///{path}", timeout_seconds=timeout_seconds
        )

        @event.listens_for(self.engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()


def normalize_postgres_url(database_url: str) -> str:
    """Point postgres:// style URLs at the asyncpg driver."""
    for prefix in ("postgres://", "postgresql://"):
        if database_url.startswith(prefix):
            return "postgresql+asyncpg://" + database_url[len(prefix):]
    return database_url


class PostgresDbClient(SqlDbClient):
    """Networked relational database. Proximity search runs in SQL."""

    kind = "postgres"
    _insert = staticmethod(postgresql.insert)

    def __init__(
        self,
        database_url: str,
        *,
        timeout_seconds: float = 10.0,
        ssl: bool = False,
    ):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        super().__init__(
            normalize_postgres_url(database_url),
            timeout_seconds=timeout_seconds,
            pool_pre_ping=True,
            pool_recycle=1800,
            connect_args={"ssl": "require"} if ssl else {},
        )

    @_storage_call
    async def find_stores_near(
        self, lat: float, lng: float, radius_km: float
    ) -> list[StoreRecord]:
        async with self.Session() as session:
            result = await session.execute(stores_near_statement(lat, lng, radius_km))
            return [_to_store_record(row, distance=row.distance) for row in result]


Base = declarative_base()


class StoreRow(Base):
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    phone = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class InventoryRow(Base):
    __tablename__ = "inventory"
    __table_args__ = (
        UniqueConstraint(
            "store_id", "drink_id", "size", name="uq_inventory_store_drink_size"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    drink_id = Column(String, nullable=False)
    size = Column(String, nullable=False)
    price = Column(Float, nullable=True)
    in_stock = Column(Boolean, nullable=False, default=True)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_by = Column(String, nullable=True)
    photo_path = Column(String, nullable=True)


class VerificationRow(Base):
    __tablename__ = "verifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    inventory_id = Column(
        Integer, ForeignKey("inventory.id"), nullable=False, index=True
    )
    user_ip = Column(String, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class VisitorRow(Base):
    __tablename__ = "visitors"

    id = Column(Integer, primary_key=True)
    count = Column(Integer, nullable=False, default=DEFAULT_VISITOR_COUNT)


class GuestbookRow(Base):
    __tablename__ = "guestbook"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
