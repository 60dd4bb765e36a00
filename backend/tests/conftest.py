"""Shared fixtures: in-memory database, fake providers, users and tokens."""

import os
import time
from io import BytesIO

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("ADMIN_EMAILS", "admin@studio.test")
os.environ.setdefault("STUDIO_CONTACT_EMAIL", "inbox@studio.test")
os.environ.setdefault("PUBLIC_BASE_URL", "https://app.studio.test")

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from PIL import Image
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from stagingpro.config import get_settings
from stagingpro.db.session import set_engine
from stagingpro.models.plan import DEFAULT_PLANS, Plan
from stagingpro.models.staff import Editor
from stagingpro.models.submission import PaymentStatus, Submission, SubmissionStatus
from stagingpro.services.identity import Role, User
from stagingpro.services.notifications import EmailResult, Notifier
from stagingpro.services.payments import CheckoutError, CheckoutSessionStatus
from stagingpro.services.realtime import change_feed
from stagingpro.services.repository import StudioData
from stagingpro.services.storage import UploadError
from stagingpro.services.vision import VisionUnavailable
from stagingpro.utils.images import encode_data_url

ADMIN_EMAIL = "admin@studio.test"
EDITOR_EMAIL = "mika@studio.test"
CLIENT_EMAIL = "client@example.com"


# ============================================================================
# Fakes
# ============================================================================

class FakeStorage:
    def __init__(self):
        self.uploads = {}
        self.fail = False

    def upload(self, path, data_url):
        if self.fail:
            raise UploadError("storage offline")
        self.uploads[path] = data_url
        return f"https://cdn.studio.test/{path}"

    def open(self, path):
        if path not in self.uploads:
            raise FileNotFoundError(path)
        return b"img", "image/jpeg"


class FakeEmailClient:
    def __init__(self):
        self.sent = []

    def send(self, to, subject, html):
        self.sent.append({"to": to, "subject": subject, "html": html})
        return EmailResult(success=True, recipients=[to])

    def subjects(self):
        return [m["subject"] for m in self.sent]


class FakeCheckout:
    def __init__(self, configured=True):
        self.configured = configured
        self.sessions = {}
        self.paid = set()

    def _require_configured(self):
        if not self.configured:
            raise CheckoutError("Payment provider is not configured (STRIPE_SECRET_KEY missing)")

    def create_session(self, plan_title, amount, order_id, user_email=None):
        self._require_configured()
        if not isinstance(amount, int) or amount <= 0:
            raise CheckoutError(f"Invalid amount: {amount!r}")
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions[session_id] = {"title": plan_title, "amount": amount, "order_id": order_id, "email": user_email}
        return f"https://checkout.test/{session_id}"

    def complete(self, session_id):
        self.paid.add(session_id)

    def retrieve(self, session_id):
        self._require_configured()
        session = self.sessions.get(session_id)
        if session is None:
            raise CheckoutError(f"No such checkout session: {session_id}")
        return CheckoutSessionStatus(
            session_id=session_id,
            paid=session_id in self.paid,
            order_id=session["order_id"],
            amount_total=session["amount"],
        )

    def last_session_id(self):
        return list(self.sessions)[-1]


class FakeAnalyzer:
    def __init__(self, text="Bright room with high ceilings. Japandi would suit it."):
        self.text = text
        self.calls = 0

    def analyze(self, image_data_url):
        self.calls += 1
        if self.text is None:
            raise VisionUnavailable("AI Analysis currently unavailable.")
        return self.text


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    set_engine(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def data(engine, storage):
    return StudioData(feed=change_feed, storage=storage)


@pytest.fixture
def plans(data):
    for values in DEFAULT_PLANS:
        data.plans.insert(Plan(**values))
    return {p.id: p for p in data.plans.fetch_all()}


@pytest.fixture
def editor_record(data):
    return data.editors.insert(Editor(id="ed_mika1", name="Mika", email=EDITOR_EMAIL, specialty="Interiors"))


# ============================================================================
# Providers
# ============================================================================

@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def email_client():
    return FakeEmailClient()


@pytest.fixture
def notifier(email_client, settings):
    return Notifier(email_client, settings.studio_contact_email, settings.public_base_url)


@pytest.fixture
def checkout():
    return FakeCheckout()


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


# ============================================================================
# Users and records
# ============================================================================

@pytest.fixture
def admin():
    return User(id="u-admin", email=ADMIN_EMAIL, role=Role.ADMIN)


@pytest.fixture
def editor(editor_record):
    return User(id="u-editor", email=EDITOR_EMAIL, role=Role.EDITOR, editor_record_id=editor_record.id)


@pytest.fixture
def customer():
    return User(id="u-client", email=CLIENT_EMAIL, role=Role.USER)


@pytest.fixture
def make_submission(data, plans):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = dict(
            id=f"SUB{counter['n']:04d}",
            owner_id="u-client",
            owner_email=CLIENT_EMAIL,
            plan="furniture_add",
            data_url="https://cdn.studio.test/u-client/source.jpg",
            instructions="",
            status=SubmissionStatus.PENDING.value,
            payment_status=PaymentStatus.PAID.value,
            timestamp=1_700_000_000_000 + counter["n"] * 1000,
        )
        values.update(overrides)
        return data.submissions.insert(Submission(**values))

    return _make


@pytest.fixture
def image_data_url():
    buf = BytesIO()
    Image.new("RGB", (40, 20), color=(200, 180, 160)).save(buf, format="PNG")
    return encode_data_url(buf.getvalue(), "image/png")


# ============================================================================
# HTTP
# ============================================================================

def make_token(user_id, email, secret="test-jwt-secret", audience="authenticated", expires_in=3600):
    claims = {"sub": user_id, "email": email, "aud": audience, "exp": int(time.time()) + expires_in}
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(user_id, email):
    return {"Authorization": f"Bearer {make_token(user_id, email)}"}


@pytest.fixture
def api(data, notifier, checkout, analyzer):
    from stagingpro.api.deps import get_analyzer, get_checkout, get_data, get_notifier
    from stagingpro.main import app

    app.dependency_overrides[get_data] = lambda: data
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_checkout] = lambda: checkout
    app.dependency_overrides[get_analyzer] = lambda: analyzer
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def headers():
    def _headers(user):
        return auth_headers(user.id, user.email)

    return _headers


@pytest.fixture
def token_for():
    def _token(user):
        return make_token(user.id, user.email)

    return _token
