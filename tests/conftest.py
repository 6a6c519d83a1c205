"""
Pytest configuration and fixtures for auto-send tests.

Provides:
- File-backed SQLite database (NullPool, so planner and executor sessions
  get their own connections like they do against Postgres)
- Fake record renderer and fake SMTP dispatcher
- Planner, composer, executor and runner wired to the fakes
- Test client for API testing with an admin session cookie
- Factory fixtures for creating test data
"""

import asyncio
import io
import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pypdf import PdfReader, PdfWriter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from autosend.config import AutoSendConfig, Settings, get_settings
from autosend.core.database import build_session_factory, get_db
from autosend.core.datetime_utils import utc_now
from autosend.core.errors import ComposeError, DispatchError
from autosend.core.tasks import BackgroundWorker
from autosend.main import app
from autosend.models import Base
from autosend.models.fuel_entry import FuelEntry
from autosend.models.recipient import Recipient
from autosend.models.user import Session, User, UserRole
from autosend.services.artifacts import ArtifactStore
from autosend.services.composer import DocumentComposer
from autosend.services.executor import BatchExecutor
from autosend.services.fuel_entries import register_fuel_entry
from autosend.services.mailer import Attachment
from autosend.services.planner import BatchPlanner
from autosend.services.settings_service import update_settings
from autosend.services.triggers import AutoSendRunner

TEST_CRON_SECRET = "test-cron-secret"

# A day with data in most tests; entries sit at 09:00 UTC (10:00 in Sarajevo)
REPORT_DAY = date(2026, 3, 10)


# Override settings for testing
class TestSettings(Settings):
    database_url: str = "sqlite+aiosqlite://"
    debug: bool = True
    secret_key: str = "test-secret-key"
    cron_secret: str = TEST_CRON_SECRET
    scheduler_enabled: bool = False
    base_url: str = "http://localhost:8000"


def blank_pdf(width: float, pages: int = 1, height: float = 842) -> bytes:
    """A PDF of blank pages; tests identify pages by their width."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=height)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def page_widths(pdf: bytes) -> list[int]:
    """Page widths of a PDF, in page order."""
    return [round(float(page.mediabox.width)) for page in PdfReader(io.BytesIO(pdf)).pages]


class FakeRenderer:
    """Renders each entry as one blank page whose width is its registration number."""

    def __init__(self) -> None:
        self.calls: list[int] = []
        self.fail_for: set[int] = set()

    async def render(self, entry: FuelEntry) -> bytes:
        self.calls.append(entry.registration_number)
        if entry.registration_number in self.fail_for:
            raise ComposeError(f"Rendering entry {entry.registration_number} failed")
        return blank_pdf(width=entry.registration_number)


class FakeDispatcher:
    """Records sent emails; addresses in ``fail_for`` raise DispatchError."""

    header_cid = None

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str, Attachment]] = []
        self.fail_for: set[str] = set()
        self.delay: float = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, to: str, subject: str, html: str, attachment: Attachment) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if to in self.fail_for:
                raise DispatchError(f"Email to {to} failed: 550 mailbox unavailable")
            self.sent.append((to, subject, html, attachment))
        finally:
            self.in_flight -= 1

    @property
    def recipients(self) -> list[str]:
        return [to for to, *_ in self.sent]


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a file-backed SQLite engine with the full schema."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'autosend.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging and inspecting data; factories commit through it."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def auto_send_config() -> AutoSendConfig:
    return AutoSendConfig({"timezone": "Europe/Sarajevo", "max_concurrency": 3})


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def certificate_dir(tmp_path):
    path = tmp_path / "public"
    path.mkdir()
    return path


@pytest.fixture
def artifacts(tmp_path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "artifacts")


@pytest.fixture
def composer(session_factory, renderer, certificate_dir) -> DocumentComposer:
    return DocumentComposer(session_factory, renderer, certificate_dir)


@pytest.fixture
def planner(session_factory, auto_send_config) -> BatchPlanner:
    return BatchPlanner(session_factory, auto_send_config)


@pytest.fixture
def executor(session_factory, composer, dispatcher, artifacts, auto_send_config) -> BatchExecutor:
    return BatchExecutor(session_factory, composer, dispatcher, artifacts, auto_send_config)


@pytest_asyncio.fixture
async def runner(planner, executor, session_factory) -> AsyncGenerator[AutoSendRunner, None]:
    worker = BackgroundWorker()
    yield AutoSendRunner(planner, executor, worker, session_factory)
    await worker.shutdown(timeout=5)


@pytest_asyncio.fixture
async def client(session_factory, runner) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with database, settings and runner overrides."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def override_get_settings():
        return TestSettings()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = override_get_settings
    app.state.runner = runner

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_client(client: AsyncClient, login_factory) -> AsyncClient:
    """Test client carrying an ADMIN session cookie."""
    login = await login_factory(role=UserRole.ADMIN)
    client.cookies.set("session_id", str(login.id))
    return client


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def user_factory(db_session: AsyncSession):
    """Factory for creating back-office users."""

    async def _create_user(
        email: str | None = None,
        role: UserRole = UserRole.ADMIN,
        is_active: bool = True,
    ) -> User:
        if email is None:
            email = f"user-{uuid.uuid4().hex[:8]}@fuel.test"

        user = User(email=email, role=role, is_active=is_active)
        db_session.add(user)
        await db_session.commit()
        return user

    return _create_user


@pytest_asyncio.fixture
async def login_factory(db_session: AsyncSession, user_factory):
    """Factory for creating cookie sessions."""

    async def _create_login(
        user: User | None = None,
        role: UserRole = UserRole.ADMIN,
        expired: bool = False,
    ) -> Session:
        if user is None:
            user = await user_factory(role=role)

        session = Session(
            user_id=user.id,
            expires_at=utc_now() + timedelta(days=-1 if expired else 30),
        )
        db_session.add(session)
        await db_session.commit()
        return session

    return _create_login


@pytest_asyncio.fixture
async def recipient_factory(db_session: AsyncSession):
    """Factory for creating auto-send recipients."""

    async def _create_recipient(
        email: str | None = None,
        name: str | None = None,
        is_active: bool = True,
    ) -> Recipient:
        if email is None:
            email = f"dispatch-{uuid.uuid4().hex[:8]}@depot.test"

        recipient = Recipient(email=email.lower(), name=name, is_active=is_active)
        db_session.add(recipient)
        await db_session.commit()
        return recipient

    return _create_recipient


@pytest_asyncio.fixture
async def entry_factory(db_session: AsyncSession):
    """Factory for fuel entries; registration numbers come from the durable counter."""

    async def _create_entry(
        entry_date: datetime | None = None,
        product_name: str = "Eurodiesel BS",
        quantity: float = 1000.0,
        certificate_path: str | None = None,
        is_active: bool = True,
    ) -> FuelEntry:
        if entry_date is None:
            entry_date = datetime.combine(REPORT_DAY, datetime.min.time()) + timedelta(hours=9)

        entry = await register_fuel_entry(
            db_session,
            entry_date=entry_date,
            product_name=product_name,
            quantity=quantity,
            warehouse_code="SA-01",
            warehouse_name="Sarajevo Depot",
            certificate_path=certificate_path,
        )
        entry.is_active = is_active
        await db_session.commit()
        return entry

    return _create_entry


@pytest_asyncio.fixture
async def select_recipients(db_session: AsyncSession):
    """Store recipients as the settings selection and set the enabled switch."""

    async def _select(recipients: list[Recipient], is_enabled: bool = True) -> None:
        await update_settings(
            db_session,
            is_enabled=is_enabled,
            selected_recipient_ids=[r.id for r in recipients],
        )
        await db_session.commit()

    return _select
