# tests/conftest.py
import pytest
from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.database import Base
from app.models import Event, Product  # noqa: F401
from app.services.notifications.channel import InMemoryChannel
from app.services.notifications.dispatcher import BroadcastDispatcher
from app.services.notifications.notifier import ChangeNotifier
from app.services.notifications.registry import SubscriptionRegistry
from app.services.stock_service import LowStockEvaluator

SELLER_A = "seller-a"
SELLER_B = "seller-b"


@pytest.fixture(scope="function")
async def test_engine(tmp_path):
    """File backed SQLite engine, fresh schema per test function."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")

    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
    @sa_event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Provide a database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def channel():
    return InMemoryChannel()


@pytest.fixture
async def notifier(channel):
    """Change notifier with its outbox pump running."""
    notifier = ChangeNotifier(channel)
    notifier.start()
    yield notifier
    await notifier.stop()


@pytest.fixture
async def registry():
    """Registry with short timers so liveness behaviour is observable in tests."""
    registry = SubscriptionRegistry(heartbeat_interval=0.05, client_timeout=1.0, queue_size=100)
    yield registry
    await registry.close_all()


@pytest.fixture
async def dispatcher(channel, registry):
    dispatcher = BroadcastDispatcher(channel, registry, reconnect_delay=0.01)
    dispatcher.start()
    await dispatcher.wait_listening(timeout=1.0)
    yield dispatcher
    await dispatcher.stop()


@pytest.fixture
def low_stock(session_factory, notifier):
    return LowStockEvaluator(session_factory, notifier, threshold=5)


@pytest.fixture
def sample_product_data():
    """Provide sample product data for tests"""
    return {
        "name": "Widget",
        "description": "A test widget",
        "price": 19.99,
        "quantity": 20,
        "category": "Tools",
    }
