"""
Pytest fixtures for test database, client, authentication and engine rows.

Tables are created and dropped around every test. The default database is
a SQLite file (aiosqlite) so concurrent sessions contend for real locks;
point TEST_DATABASE_URL at PostgreSQL to run against asyncpg instead.
"""

import itertools
import os
import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'gameone_test.db')}",
)

# Settings are read once at import time, so configure before importing the app
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["REDIS_ENABLED"] = "false"
os.environ["NOTIFICATION_BACKEND"] = "outbox"
os.environ.setdefault("MAX_RETRY_ATTEMPTS", "20")
os.environ.setdefault("RETRY_BACKOFF_SECONDS", "0.01")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from gameone.core.security import create_access_token  # noqa: E402
from gameone.db.base import Base  # noqa: E402
from gameone.db.session import get_db  # noqa: E402
from gameone.main import app  # noqa: E402
from gameone.models import (  # noqa: E402
    BankAccount,
    Event,
    NotificationOutbox,
    PendingPayment,
    Registration,
    User,
)
from gameone.models.enums import PendingPaymentStatus, RegistrationStatus, RegistrationType  # noqa: E402
from gameone.services.strategy_factory import set_dispatcher  # noqa: E402

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

_symbols = itertools.count(1000000000)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    set_dispatcher(None)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own committed transaction."""

    async def override_get_db():
        async with TestSessionLocal() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    counter = itertools.count(1)

    async def _make(name: str = None) -> User:
        n = next(counter)
        user = User(email=f"player{n}@example.com", name=name or f"Player {n}")
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest_asyncio.fixture
async def test_user(make_user) -> User:
    return await make_user("Test Player")


@pytest_asyncio.fixture
async def admin_user(make_user) -> User:
    return await make_user("Organizer")


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    token = create_access_token(data={"sub": str(test_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict:
    token = create_access_token(data={"sub": str(admin_user.id), "role": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def bank_account(db_session: AsyncSession) -> BankAccount:
    account = BankAccount(
        name="GameOne Club",
        bank_name="Tatra banka",
        iban="SK3112000000198742637541",
        swift="TATRSKBX",
        is_default=True,
    )
    db_session.add(account)
    await db_session.commit()
    return account


@pytest_asyncio.fixture
async def make_event(db_session: AsyncSession, bank_account: BankAccount):
    async def _make(
        capacity: int = 3,
        price: Decimal = Decimal("25.00"),
        requires_payment: bool = True,
        allow_waiting_list: bool = True,
        title: str = "Summer Cup",
    ) -> Event:
        event = Event(
            title=title,
            start_date=datetime.now(timezone.utc) + timedelta(days=30),
            venue="Sports Hall",
            capacity=capacity,
            price=price,
            currency="EUR",
            requires_payment=requires_payment,
            allow_waiting_list=allow_waiting_list,
            version=1,
        )
        db_session.add(event)
        await db_session.commit()
        return event

    return _make


@pytest_asyncio.fixture
async def test_event(make_event) -> Event:
    """Event with 3 spots at 25.00 EUR."""
    return await make_event()


@pytest_asyncio.fixture
async def make_registration(db_session: AsyncSession):
    """Insert a registration row directly, bypassing the engine."""
    counter = itertools.count(1)

    async def _make(
        event: Event,
        status: RegistrationStatus = RegistrationStatus.CONFIRMED,
        user: User = None,
        group_size: int = 1,
    ) -> Registration:
        n = next(counter)
        registration = Registration(
            event_id=event.id,
            user_id=user.id if user else None,
            is_guest_request=user is None,
            guest_name=None if user else f"Guest {n}",
            guest_email=None if user else f"guest{n}@example.com",
            status=status,
            registration_type=RegistrationType.GROUP if group_size > 1 else RegistrationType.INDIVIDUAL,
            group_size=group_size,
            friends_data=[],
        )
        db_session.add(registration)
        await db_session.commit()
        return registration

    return _make


@pytest_asyncio.fixture
async def make_payment(db_session: AsyncSession):
    """Insert a pending payment row directly, bypassing the engine."""
    counter = itertools.count(1)

    async def _make(
        event: Event,
        status: PendingPaymentStatus = PendingPaymentStatus.AWAITING_PAYMENT,
        participants: int = 1,
        expires_at: datetime = None,
    ) -> PendingPayment:
        n = next(counter)
        friends = [{"name": f"Friend {n}-{i}"} for i in range(1, participants)]
        payment = PendingPayment(
            event_id=event.id,
            is_guest_request=True,
            guest_name=f"Payer {n}",
            guest_email=f"payer{n}@example.com",
            status=status,
            registration_type=RegistrationType.GROUP if participants > 1 else RegistrationType.INDIVIDUAL,
            total_participants=participants,
            friends_data=friends,
            amount=Decimal(event.price) * participants,
            currency="EUR",
            variable_symbol=str(next(_symbols)),
            expires_at=expires_at or datetime(9999, 12, 31, tzinfo=timezone.utc),
        )
        db_session.add(payment)
        await db_session.commit()
        return payment

    return _make


@pytest_asyncio.fixture
async def fresh_session() -> AsyncGenerator[AsyncSession, None]:
    """A second session for reading what other sessions committed."""
    async with TestSessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def outbox_kinds():
    """Kinds of the notification intents committed so far, oldest first."""

    async def _read(session: AsyncSession) -> list[str]:
        result = await session.execute(select(NotificationOutbox.kind).order_by(NotificationOutbox.id.asc()))
        return [kind.value for kind in result.scalars().all()]

    return _read


@pytest_asyncio.fixture
async def session_factory():
    """Opens independent sessions, one per simulated concurrent client."""
    return TestSessionLocal
