import asyncio
import os
import secrets
import sys
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Callable, List, Optional, Tuple
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker

# Ensure project root on sys.path so 'postback_settlement' resolves without an install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from postback_settlement.main import app  # type: ignore
from postback_settlement.database import Base  # type: ignore
from postback_settlement.api import deps  # type: ignore
"""Pytest fixtures and factories.

All model modules are imported before Base.metadata.create_all() so every
settlement table exists in the test database.
"""
from postback_settlement.models.db import User, CachedConversion, UserRole
from postback_settlement.services.postback_notifier import NotificationResult
from postback_settlement.services.settlement_engine import SettlementEngine
from postback_settlement.utils.time import utc_now

# File-based SQLite so the engine's own sessions and the test session see the same data
SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///./test_settlement.db"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Dependencies and the health check look SessionLocal up on the module at call time
import postback_settlement.database as _app_database  # noqa: E402
_app_database.SessionLocal = TestingSessionLocal  # type: ignore


class FakeNotifier:
    """In-memory stand-in for PostbackNotifier that records every call."""

    def __init__(
        self,
        success: bool = True,
        *,
        response_body: str = "OK",
        error_message: Optional[str] = None,
        raises: Optional[Exception] = None,
        delay: float = 0.0,
        on_send: Optional[Callable[[], None]] = None,
    ):
        self.success = success
        self.response_body = response_body
        self.error_message = error_message
        self.raises = raises
        self.delay = delay
        self.on_send = on_send
        self.calls: List[Tuple[str, Decimal]] = []

    def build_url(self, clickid: str, amount: Decimal) -> str:
        return f"https://postback.test/postback?clickid={clickid}&sum={amount}"

    async def send(self, clickid: str, amount: Decimal) -> NotificationResult:
        self.calls.append((clickid, amount))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.on_send is not None:
            self.on_send()
        if self.raises is not None:
            raise self.raises
        url = self.build_url(clickid, amount)
        if self.success:
            return NotificationResult(success=True, url=url, response_body=self.response_body, status_code=200)
        return NotificationResult(
            success=False,
            url=url,
            response_body=self.response_body,
            error_message=self.error_message or "HTTP error! status: 503",
        )


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    try:
        os.remove("test_settlement.db")
    except OSError:
        pass

@pytest.fixture(autouse=True)
def _isolate_tables(create_test_db):  # type: ignore[unused-argument]
    """Empty every settlement table before and after each test."""
    def _purge():
        session = TestingSessionLocal()
        try:
            for table in reversed(Base.metadata.sorted_tables):
                session.execute(delete(table))
            session.commit()
        finally:
            session.close()
    _purge()
    yield
    _purge()

@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

# Override dependency
def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

app.dependency_overrides[deps.get_db] = _override_get_db
app.dependency_overrides[deps.get_session_factory] = lambda: TestingSessionLocal

@pytest.fixture()
def notifier_factory():
    return FakeNotifier

@pytest.fixture()
def notifier():
    return FakeNotifier()

@pytest.fixture()
def client(notifier):
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.pop(deps.get_notifier, None)

@pytest.fixture()
def make_engine():
    def _create(notifier, **kwargs) -> SettlementEngine:
        kwargs.setdefault("clear_up_to_watermark", False)
        return SettlementEngine(TestingSessionLocal, notifier, **kwargs)
    return _create

# ---------- Data factory helpers ----------

@pytest.fixture()
def pending_factory(db_session):
    """Insert pending conversions with strictly increasing created_at."""
    base = utc_now() - timedelta(hours=1)
    counter = {"n": 0}
    def _create(clickid: str, amount, created_at=None) -> CachedConversion:
        counter["n"] += 1
        record = CachedConversion(
            clickid=clickid,
            amount=Decimal(str(amount)),
            created_at=created_at or base + timedelta(seconds=counter["n"]),
        )
        db_session.add(record)
        db_session.commit()
        db_session.refresh(record)
        return record
    return _create

@pytest.fixture()
def user_factory(db_session):
    def _create(role: UserRole = UserRole.ADMIN, is_active: bool = True) -> User:
        suffix = secrets.token_hex(4)
        user = User(
            name=f"{role.value.lower()}-{suffix}",
            email=f"{role.value.lower()}-{suffix}@example.com",
            api_key=secrets.token_urlsafe(24),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _create

@pytest.fixture()
def admin_headers(user_factory):
    admin = user_factory(UserRole.ADMIN)
    return {"Authorization": f"Bearer {admin.api_key}"}

@pytest.fixture()
def viewer_headers(user_factory):
    viewer = user_factory(UserRole.VIEWER)
    return {"Authorization": f"Bearer {viewer.api_key}"}
