"""Shared test fixtures with in-memory SQLite.

One in-memory database backs every site in the network. Replication calls
between sites are routed back into the same ASGI app, so a central push
reaches the subsite endpoints and is handled by the real code path.
"""
import uuid
from unittest.mock import MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from content_sync.dependencies import get_client_factory, get_db
from content_sync.integrations.replication.client import ReplicationClient
from content_sync.integrations.resilience import circuit_breakers
from content_sync.main import app
from content_sync.models.base import Base
from content_sync.models.content import Content, ContentStatus
from content_sync.models.site import Site
from content_sync.models.user import User, UserRole
from content_sync.services import key_service
from content_sync.services.auth_service import create_access_token, hash_password

# --- SQLite compatibility: compile PostgreSQL types for SQLite ---

@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@compiles(UUID, "sqlite")
def _compile_uuid_sqlite(type_, compiler, **kw):
    return "VARCHAR(36)"


# In-memory SQLite for tests; every session shares the one connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
test_session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@event.listens_for(test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_connection, _connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture(autouse=True)
async def setup_db():
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db():
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def asgi_client_factory(site: Site, api_key: str) -> ReplicationClient:
    """Replication client that calls back into the app under test."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    return ReplicationClient(site.url, site.id, api_key, transport=transport)


app.dependency_overrides[get_db] = _override_get_db
app.dependency_overrides[get_client_factory] = lambda: asgi_client_factory


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    circuit_breakers.clear()
    yield
    circuit_breakers.clear()


@pytest.fixture(autouse=True)
def celery_delay():
    """Keep Celery out of request paths; tests assert on the recorded calls."""
    with patch("content_sync.tasks.media_tasks.reconcile_media.delay") as media_delay, \
            patch("content_sync.tasks.notification_tasks.send_notification_email.delay") as email_delay:
        media_delay.return_value = MagicMock(id="task-1")
        yield {"media": media_delay, "email": email_delay}


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    async with test_session_factory() as session:
        yield session


async def _create_test_user(
    db: AsyncSession, role: UserRole = UserRole.ADMIN, login: str | None = None, email: str | None = None,
) -> tuple[User, str]:
    """Create a test user and return (user, access_token)."""
    login = login or f"{role.value}_{uuid.uuid4().hex[:8]}"
    user = User(
        id=uuid.uuid4(),
        login=login,
        email=email or f"{login}@test.com",
        password_hash=hash_password("testpass123"),
        display_name=f"Test {role.value.title()}",
        role=role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    token = create_access_token(str(user.id), role.value)
    return user, token


@pytest.fixture
async def admin_auth(db_session: AsyncSession) -> tuple[User, dict]:
    """Return (admin_user, auth_headers)."""
    user, token = await _create_test_user(db_session, UserRole.ADMIN)
    return user, {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def editor_auth(db_session: AsyncSession) -> tuple[User, dict]:
    user, token = await _create_test_user(db_session, UserRole.EDITOR)
    return user, {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def author_auth(db_session: AsyncSession) -> tuple[User, dict]:
    user, token = await _create_test_user(db_session, UserRole.AUTHOR)
    return user, {"Authorization": f"Bearer {token}"}


# --- Network: central site 1, subsites 5 and 7 (7 requires approval) ---

def _site(site_id: int, name: str, uploads: str, **kwargs) -> Site:
    is_main = kwargs.pop("is_main", False)
    url = f"http://{name.lower().replace(' ', '')}.test"
    return Site(
        id=site_id,
        name=name,
        url=url,
        upload_url=f"{url}/uploads" if is_main else f"{url}/uploads/sites/{site_id}",
        upload_dir=uploads if is_main else f"{uploads}/sites/{site_id}",
        is_main=is_main,
        **kwargs,
    )


@pytest.fixture
async def network(db_session: AsyncSession, tmp_path) -> dict:
    """Create the three-site network with API keys and return {"central", 5, 7, "keys"}."""
    uploads = str(tmp_path / "uploads")
    central = _site(
        1, "Central", uploads,
        is_main=True,
        is_central=True,
        admin_email="central-admin@test.com",
        post_types=["post", "page"],
        taxonomies=["category", "post_tag"],
        delete_on_subsite=True,
    )
    site5 = _site(5, "Site5", uploads, admin_email="site5-admin@test.com")
    site7 = _site(7, "Site7", uploads, approval_required=True, admin_email="site7-admin@test.com")
    db_session.add_all([central, site5, site7])
    await db_session.flush()

    keys = {}
    for site in (central, site5, site7):
        keys[site.id], _ = await key_service.get_or_create_api_key(db_session, site.id)
    await db_session.commit()
    return {"central": central, 5: site5, 7: site7, "keys": keys, "uploads": uploads}


async def create_content(
    db: AsyncSession,
    site_id: int = 1,
    title: str = "Launch",
    body: str = "<p>Hello</p>",
    status: ContentStatus = ContentStatus.PUBLISH,
    **kwargs,
) -> Content:
    content = Content(
        site_id=site_id,
        content_type=kwargs.pop("content_type", "post"),
        title=title,
        slug=kwargs.pop("slug", title.lower().replace(" ", "-")),
        body=body,
        status=status,
        **kwargs,
    )
    db.add(content)
    await db.commit()
    await db.refresh(content)
    return content


def api_key_headers(network: dict, site_id: int) -> dict:
    return {"X-API-KEY": network["keys"][site_id]}
