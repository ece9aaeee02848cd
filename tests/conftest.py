"""Pytest configuration: in-memory billing database and notification doubles."""

import os
from datetime import date

# Set test environment BEFORE any imports from src
# so the module-level engine and locale never touch a real database or .env
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOCALE"] = "id_ID"

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from src.models import Base, Invoice, InvoiceStatus, Setting, Tenant  # noqa: E402
from src.services import build_engine  # noqa: E402
from src.services.config import BillingConfig  # noqa: E402
from src.services.gateway_client import PakasirClient  # noqa: E402
from src.services.notification_service import NotificationService  # noqa: E402
from src.services.period_service import due_date  # noqa: E402

PROJECT = "wifique"
API_KEY = "test-api-key"


class DummyBot:
    """Records messages instead of calling Telegram."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_message(self, chat_id, text, reply_markup=None, parse_mode=None):
        if self.fail:
            raise RuntimeError("Telegram unavailable")
        self.sent.append({"chat_id": chat_id, "text": text, "parse_mode": parse_mode})


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def config():
    return BillingConfig(
        _env_file=None,
        database_url="sqlite:///:memory:",
        pakasir_project=PROJECT,
        pakasir_api_key=API_KEY,
        scheduler_run_on_start=False,
    )


@pytest.fixture
def settings(session):
    """Billing settings used by the lifecycle scenario."""
    session.add_all(
        [
            Setting(key="monthly_fee", value="100000"),
            Setting(key="reminder_days", value="3,1,0"),
            Setting(key="auto_disconnect", value="true"),
            Setting(key="pakasir_project", value=PROJECT),
            Setting(key="pakasir_api_key", value=API_KEY),
        ]
    )
    session.commit()


@pytest.fixture
def bot():
    return DummyBot()


@pytest.fixture
def notifier(bot):
    return NotificationService(bot)


@pytest.fixture
def tenant(session):
    tenant = Tenant(name="Budi", unit_name="Room 3", telegram_id="1001", is_active=True)
    session.add(tenant)
    session.commit()
    return tenant


@pytest.fixture
def make_invoice(session):
    """Factory for invoices in any state."""

    def _make(
        tenant: Tenant,
        month: int = 6,
        year: int = 2024,
        amount: int = 100000,
        status: InvoiceStatus = InvoiceStatus.PENDING,
        order_id: str | None = None,
        due: date | None = None,
    ) -> Invoice:
        invoice = Invoice(
            tenant_id=tenant.id,
            period_month=month,
            period_year=year,
            amount=amount,
            due_date=due or due_date(month, year),
            status=status,
            gateway_order_id=order_id,
        )
        session.add(invoice)
        session.commit()
        return invoice

    return _make


@pytest.fixture
def pending_invoice(make_invoice, tenant):
    """Tenant's pending June 2024 invoice, due 2024-07-05."""
    return make_invoice(tenant, order_id="WFQ-1-1719800000000")


@pytest.fixture
def gateway_factory():
    """Build a gateway client answering from an in-process handler."""

    def _build(handler) -> PakasirClient:
        return PakasirClient("https://pakasir.test/api", transport=httpx.MockTransport(handler))

    return _build


@pytest.fixture
def failing_notifier():
    """Notifier whose every send fails."""
    return NotificationService(DummyBot(fail=True))
