# tests/conftest.py
"""
Pytest fixtures: an in-memory SQLite database, stub gateways for the
identity provider, object storage, payments and email, and a Flask test
client wired to all of them.
"""
from itertools import count

import pytest

from storefront.config import Config
from storefront.database import build_engine, build_session_factory, init_database
from storefront.gateways import PaymentGateway, StorageGateway
from storefront.main import create_app
from storefront.models import Category, Product, ProductImage, ProductVariant
from storefront.observability import reset_metrics

ADMIN_SECRET = "admin-secret"
WEBHOOK_SECRET = "whsec_test"


class StubConfig(Config):
    TESTING = True
    DEBUG = False
    DATABASE_URL = "sqlite://"
    SQL_ECHO = False
    STRUCTURED_LOGS_ENABLED = False
    FRONTEND_URL = "http://localhost:5173"
    SUPABASE_URL = "https://project.supabase.test"
    SUPABASE_SERVICE_ROLE_KEY = "service-role"
    STRIPE_SECRET_KEY = "sk_test_123"
    STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET
    STRIPE_WEBHOOK_ALLOW_UNVERIFIED = False
    ADMIN_SECRET = ADMIN_SECRET
    RESEND_API_KEY = ""
    ORDER_EMAIL_FROM = ""


class StubIdentity:
    def __init__(self):
        self.users = {}

    def add_user(self, token, user_id, email=None):
        self.users[token] = {"id": user_id, "email": email or f"{user_id}@example.com"}
        return self.users[token]

    def get_user(self, access_token):
        return self.users.get(access_token)


class StubStorage:
    path_from_public_url = staticmethod(StorageGateway.path_from_public_url)

    def __init__(self, base_url=StubConfig.SUPABASE_URL):
        self.base_url = base_url
        self.objects = set()
        self.removed = []
        self.signed_uploads = []

    def create_signed_upload_url(self, bucket, path):
        self.signed_uploads.append((bucket, path))
        return {"signed_url": f"{self.base_url}/upload/{bucket}/{path}?token=tok", "token": "tok"}

    def create_signed_url(self, bucket, path, expires_in, download=None):
        url = f"{self.base_url}/signed/{bucket}/{path}?expires={expires_in}"
        if download:
            url += f"&download={download}"
        return url

    def object_exists(self, bucket, path):
        return (bucket, path) in self.objects

    def remove(self, bucket, paths):
        self.removed.append((bucket, list(paths)))

    def public_url(self, bucket, path):
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"


class StubPayments:
    construct_event = staticmethod(PaymentGateway.construct_event)
    parse_event = staticmethod(PaymentGateway.parse_event)

    def __init__(self, configured=True):
        self.configured = configured
        self.created = []
        self.updated = []
        self._ids = count(1)

    def create_payment_intent(self, amount_cents, currency, metadata=None, receipt_email=None):
        intent_id = f"pi_test_{next(self._ids)}"
        self.created.append(
            {"id": intent_id, "amount": amount_cents, "currency": currency, "metadata": metadata, "receipt_email": receipt_email}
        )
        return {"id": intent_id, "client_secret": f"{intent_id}_secret", "amount": amount_cents}

    def update_payment_intent(self, intent_id, amount_cents):
        self.updated.append({"id": intent_id, "amount": amount_cents})
        return {"id": intent_id, "client_secret": f"{intent_id}_secret", "amount": amount_cents}


class StubNotifier:
    configured = True

    def __init__(self):
        self.sent = []

    def send_order_confirmation(self, order, lines):
        self.sent.append((order.id, lines))
        return True, None


@pytest.fixture(autouse=True)
def clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def session_factory():
    engine = build_engine(StubConfig)
    init_database(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def identity():
    return StubIdentity()


@pytest.fixture
def storage():
    return StubStorage()


@pytest.fixture
def payments():
    return StubPayments()


@pytest.fixture
def notifier():
    return StubNotifier()


@pytest.fixture
def make_app(session_factory, identity, storage, payments, notifier):
    """Build an app, optionally overriding config attributes."""

    def _make(**overrides):
        config = type("OverriddenConfig", (StubConfig,), overrides) if overrides else StubConfig
        return create_app(
            config,
            session_factory=session_factory,
            identity=identity,
            storage=storage,
            payments=payments,
            notifier=notifier,
        )

    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_SECRET}"}


@pytest.fixture
def user_headers(identity):
    identity.add_user("user-token", "user-1", "shopper@example.com")
    return {"Authorization": "Bearer user-token"}


@pytest.fixture
def sample_catalog(db_session):
    """One category with a T-shirt in two colours and two sizes."""
    category = Category(slug="t-shirts", name="T-Shirts", sort_order=1)
    db_session.add(category)
    db_session.flush()

    product = Product(
        slug="classic-tee",
        name="Classic Tee",
        description="Soft cotton tee",
        category_id=category.id,
        base_rating=4.0,
        rating_count=3,
    )
    db_session.add(product)
    db_session.flush()

    variants = {
        ("Black", "M"): ProductVariant(
            product_id=product.id, color_name="Black", color_hex="#000000", size="M", price_cents=2000, sku="TEE-BLAC-M"
        ),
        ("Black", "L"): ProductVariant(
            product_id=product.id, color_name="Black", color_hex="#000000", size="L", price_cents=2200, sku="TEE-BLAC-L"
        ),
        ("White", "M"): ProductVariant(
            product_id=product.id, color_name="White", color_hex=None, size="M", price_cents=1800, sku="TEE-WHIT-M"
        ),
    }
    for variant in variants.values():
        db_session.add(variant)

    images = [
        ProductImage(product_id=product.id, url="https://cdn.test/black-front.png", color_name="Black", angle="front", sort_order=1),
        ProductImage(product_id=product.id, url="https://cdn.test/white-front.png", color_name="White", angle="front", sort_order=0),
        ProductImage(product_id=product.id, url="https://cdn.test/black-back.png", color_name="Black", angle="back", sort_order=2),
    ]
    for image in images:
        db_session.add(image)
    db_session.commit()
    return {"category": category, "product": product, "variants": variants, "images": images}
