import pytest
import httpx
from types import SimpleNamespace

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

# Import Base + all models so metadata is complete
from app.models.base import Base
from app.models.property import Property, PropertyStatus, utcnow  # noqa: F401
from app.models.admin_log import AdminLog  # noqa: F401

from app.main import app
from app.database import get_session
from app.dependencies.auth import get_caller_context
from app.dependencies.rate_limit import write_limiter
from app.services.access import CallerContext, PropertyAccessControl, Role, status_fields
from app.services.notifications import get_notifier
from app.services.property_store import PropertyStore


class RecordingNotifier:
    def __init__(self):
        self.events = []

    async def publish(self, event):
        self.events.append(event)


@pytest.fixture
def callers():
    return SimpleNamespace(
        admin=CallerContext(user_id=100, role=Role.ADMIN),
        staff=CallerContext(user_id=200, role=Role.STAFF),
        owner_a=CallerContext(user_id=1, role=Role.OWNER),
        owner_b=CallerContext(user_id=2, role=Role.OWNER),
        anonymous=CallerContext.anonymous(),
    )


@pytest.fixture
async def async_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def access(db_session, notifier):
    return PropertyAccessControl(PropertyStore(db_session), notifier=notifier)


@pytest.fixture
def seed(db_session):
    """Insert a property directly, bypassing the creation policy."""
    async def _seed(owner_id: int, status: PropertyStatus = PropertyStatus.PENDING, **overrides) -> Property:
        values = {"title": f"Listing of {owner_id}", "price": 120.0, "location": "Lisbon"}
        values.update(overrides)
        values.update(status_fields(status, utcnow()))
        values["owner_id"] = owner_id
        prop = await PropertyStore(db_session).insert(values)
        await db_session.commit()
        return prop
    return _seed


@pytest.fixture
def caller_state():
    return {"caller": CallerContext.anonymous()}


@pytest.fixture
def login(caller_state):
    def _login(caller: CallerContext):
        caller_state["caller"] = caller
    return _login


@pytest.fixture
async def client(db_session, notifier, caller_state):
    """
    HTTP client bound to the test session, with identity supplied by `login`.
    """
    async def _override_get_session():
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    app.dependency_overrides[get_caller_context] = lambda: caller_state["caller"]
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[write_limiter] = lambda: None

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
