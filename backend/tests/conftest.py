import os

# settings are read at import time; point everything at throwaway backends before app.* is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOCK_BACKEND", "memory")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

import app.db.model  # noqa: F401  registers every table
from app.core.config import settings
from app.db.base import Base
from app.db.model.customer import Customer
from app.db.model.order import Order, OrderItem
from app.db.model.product import Product, ProductVariant
from app.db.model.shop import Shop
from app.integrations.shoptet.errors import RemoteFetchFailure
from app.integrations.shoptet.orders_api import OrderPage
from app.services.locking import InMemoryLockStore, JobLockManager
from app.services.locking import manager as lock_manager_module


FIXED_NOW = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)


# ---------- database ----------
@pytest.fixture
def engine(tmp_path):
    # file database + NullPool: every session gets its own connection, like a real server
    eng = create_engine(
        f"sqlite:///{tmp_path / 'hub.db'}",
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def patch_sessions(monkeypatch, session_factory):
    """Tasks open SessionLocal() themselves; route them to the test database."""
    from app.orchestration import common, scheduler_tick
    from app.orchestration.customer_metrics import customer_metrics_task
    from app.orchestration.inventory_metrics import inventory_metrics_task

    for module in (common, scheduler_tick, customer_metrics_task, inventory_metrics_task):
        monkeypatch.setattr(module, "SessionLocal", session_factory)
    return session_factory


@pytest.fixture
def lock_manager(monkeypatch):
    manager = JobLockManager(store=InMemoryLockStore())
    monkeypatch.setattr(lock_manager_module, "_default_manager", manager)
    return manager


@pytest.fixture
def inline_tasks(monkeypatch):
    monkeypatch.setattr(settings, "SYNC_TASKS_INLINE", True)


# ---------- seed helpers ----------
def make_shop(db, name: str = "CZ", timezone_name: str = "Europe/Prague", token: str = "token") -> Shop:
    shop = Shop(name=name, provider="shoptet", api_token=token, timezone=timezone_name, currency_code="CZK")
    db.add(shop)
    db.commit()
    return shop


def make_variant(db, shop: Shop, code: str) -> ProductVariant:
    product = Product(guid=f"product-{code}-{shop.id}", shop_id=shop.id, name=code)
    db.add(product)
    db.flush()
    variant = ProductVariant(product_id=product.id, code=code, name=code)
    db.add(variant)
    db.commit()
    return variant


def make_customer(db, guid: str, email: Optional[str] = None, **extra) -> Customer:
    customer = Customer(guid=guid, email=email or f"{guid}@example.com", **extra)
    db.add(customer)
    db.commit()
    return customer


def make_order(
    db,
    code: str,
    *,
    shop: Optional[Shop] = None,
    customer_guid: Optional[str] = None,
    status: Optional[str] = "Vyřízena",
    total: Optional[float] = 100.0,
    ordered_at: Optional[datetime] = None,
    items: Optional[List[Dict[str, Any]]] = None,
) -> Order:
    ordered_at = ordered_at or FIXED_NOW
    order = Order(
        code=code,
        shop_id=shop.id if shop is not None else None,
        customer_guid=customer_guid,
        status=status,
        total_with_vat=total,
        ordered_at=ordered_at,
    )
    db.add(order)
    db.flush()
    for position, item in enumerate(items or []):
        db.add(OrderItem(
            id=uuid.uuid4(),
            created_at=ordered_at,
            order_id=order.id,
            name=item.get("name", f"item {position}"),
            code=item.get("code"),
            amount=item.get("amount", 1),
            price_with_vat=item.get("price_with_vat"),
        ))
    db.commit()
    return order


def order_payload(code: str, change_time: str, items: Optional[List[Dict[str, Any]]] = None, **extra) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "code": code,
        "guid": f"guid-{code}",
        "creationTime": "2026-10-18T09:00:00+0200",
        "changeTime": change_time,
        "status": {"id": -2, "name": "Vyřízena"},
        "price": {"withVat": "250.00", "withoutVat": "206.61", "vat": "43.39", "currencyCode": "CZK"},
        "billingAddress": {"fullName": "Jana Nováková"},
        "email": "jana@example.com",
        "customer": {"guid": "cust-1"},
    }
    if items is not None:
        payload["items"] = items
    payload.update(extra)
    return payload


class FakeOrderClient:
    """RemoteOrderClient double: pages by number, details by code."""

    def __init__(self, pages=None, details=None, failing_details=(), list_error: Optional[Exception] = None):
        self.pages: List[OrderPage] = list(pages or [])
        self.details: Dict[str, Dict[str, Any]] = dict(details or {})
        self.failing_details = set(failing_details)
        self.list_error = list_error
        self.list_calls: List[Dict[str, Any]] = []
        self.detail_calls: List[str] = []

    def list_orders(self, shop, filters, page, per_page):
        self.list_calls.append({"shop_id": shop.id, "filters": dict(filters), "page": page, "per_page": per_page})
        if self.list_error is not None:
            raise self.list_error
        if page <= len(self.pages):
            return self.pages[page - 1]
        return OrderPage(orders=[], paginator={})

    def get_order_detail(self, shop, code):
        self.detail_calls.append(code)
        if code in self.failing_details:
            raise RemoteFetchFailure(f"order {code}: boom")
        return self.details[code]


class InMemoryPartitionCatalog:
    """PartitionCatalog double backed by a set of child table names."""

    def __init__(self, parent: str = "order_items", existing=(), fail_on=()):
        self.parent = parent
        self.children = set(existing)
        self.fail_on = set(fail_on)
        self.created = []
        self.dropped = []

    def exists(self, name):
        return name in self.children

    def create(self, partition):
        if partition.name in self.fail_on:
            raise RuntimeError("permission denied")
        self.children.add(partition.name)
        self.created.append(partition)

    def drop(self, name):
        if name in self.fail_on:
            raise RuntimeError("permission denied")
        self.children.discard(name)
        self.dropped.append(name)

    def list_children(self):
        return sorted(self.children)
