"""Shared fixtures for Family Ledger tests."""

import asyncio

import pytest

from family_ledger.audit import AuditLogger
from family_ledger.config import AppSettings
from family_ledger.orchestrator import LedgerService
from family_ledger.services.storage import (
    AtomicStore,
    InMemoryAuditStorage,
    InMemorySnapshotStore,
)


def run_async(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def backend():
    return InMemorySnapshotStore()


@pytest.fixture
def service(backend, audit_storage):
    return LedgerService(
        store=AtomicStore(backend),
        audit_logger=AuditLogger(audit_storage),
        app_settings=AppSettings(),
    )


@pytest.fixture
def family(service):
    """
    Two registered users.

    u1 owns the default "Personal" bill; u2 has no access to it yet.
    """
    u1 = run_async(service.register_user({"email": "u1@example.com", "password": "pw1"}))
    u2 = run_async(service.register_user({"email": "u2@example.com", "password": "pw2"}))
    bill = run_async(service.list_bills(u1.id))[0]
    categories = run_async(service.list_categories(u1.id))
    by_name = {c.name: c for c in categories}
    return {
        "u1": u1.id,
        "u2": u2.id,
        "bill": bill.id,
        "salary": by_name["Salary"].id,
        "groceries": by_name["Groceries"].id,
    }
