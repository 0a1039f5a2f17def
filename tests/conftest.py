"""Shared fixtures: in-memory database, API client, users, catalog data, fake SMTP and S3."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SMTP_USERNAME"] = "mailer@marketplace.test"
os.environ["SMTP_PASSWORD"] = "smtp-secret"
os.environ["EMAIL_FROM"] = "info@marketplace.test"
os.environ["ADMIN_EMAIL"] = "admin@marketplace.test"
os.environ["FRONTEND_URL"] = "https://marketplace.test"
os.environ["S3_BUCKET"] = "test-bucket"
os.environ["AWS_REGION"] = "me-central-1"

import email
import email.policy
import smtplib

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.models import Category, Service, User, Vendor
from app.services import s3
from app.utils.security import create_access_token
from main import app


class FakeSMTP:
    """Stands in for smtplib.SMTP; records every message handed to sendmail"""

    def __init__(self, outbox, host, port, timeout=None):
        self.outbox = outbox
        self.host = host
        self.port = port

    def starttls(self, context=None):
        if self.outbox.fail_connect:
            raise smtplib.SMTPAuthenticationError(535, b"5.7.3 Authentication unsuccessful")

    def login(self, username, password):
        pass

    def noop(self):
        return (250, b"OK")

    def sendmail(self, from_addr, to_addrs, msg):
        for recipient in to_addrs:
            if recipient in self.outbox.rejected:
                raise smtplib.SMTPRecipientsRefused({recipient: (550, b"Mailbox unavailable")})
        parsed = email.message_from_string(msg, policy=email.policy.default)
        self.outbox.messages.append({
            "from": from_addr,
            "to": list(to_addrs),
            "subject": parsed["Subject"],
            "text": parsed.get_body(preferencelist=("plain",)).get_content(),
            "html": parsed.get_body(preferencelist=("html",)).get_content(),
        })
        return {}

    def quit(self):
        pass


class Outbox:
    def __init__(self):
        self.messages = []
        self.rejected = set()
        self.fail_connect = False

    def to(self, address):
        return [m for m in self.messages if address in m["to"]]

    @property
    def subjects(self):
        return [m["subject"] for m in self.messages]


class FakeS3Client:
    def __init__(self, store):
        self.store = store

    def put_object(self, Bucket, Key, Body, ContentType):
        if self.store.fail_after is not None and len(self.store.uploaded) >= self.store.fail_after:
            from botocore.exceptions import ClientError
            raise ClientError({"Error": {"Code": "500", "Message": "InternalError"}}, "PutObject")
        self.store.objects[Key] = Body
        self.store.uploaded.append(Key)

    def delete_object(self, Bucket, Key):
        self.store.objects.pop(Key, None)
        self.store.deleted.append(Key)


class FakeBucket:
    def __init__(self):
        self.objects = {}
        self.uploaded = []
        self.deleted = []
        self.fail_after = None


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    box = Outbox()
    monkeypatch.setattr(smtplib, "SMTP", lambda host, port, timeout=None: FakeSMTP(box, host, port, timeout))
    return box


@pytest.fixture(autouse=True)
def bucket(monkeypatch):
    store = FakeBucket()
    monkeypatch.setattr(s3, "get_s3_client", lambda: FakeS3Client(store))
    return store


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _make_user(db, name, email, role, phone=None):
    user = User(name=name, email=email, phone_number=phone, hashed_password="!", role=role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def bearer(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.email, 'role': user.role})}"}


@pytest.fixture
def admin_user(db):
    return _make_user(db, "Site Admin", "ops@marketplace.test", "admin")


@pytest.fixture
def customer(db):
    return _make_user(db, "Layla Haddad", "layla@acme.test", "user", phone="+971501234567")


@pytest.fixture
def admin_headers(admin_user):
    return bearer(admin_user)


@pytest.fixture
def customer_headers(customer):
    return bearer(customer)


@pytest.fixture
def vendor_user(db):
    user = _make_user(db, "Omar Saleh", "omar@fixit.test", "vendor")
    vendor = Vendor(
        user_id=user.id,
        first_name="Omar",
        last_name="Saleh",
        email="omar@fixit.test",
        country_code="+971",
        mobile_number="509876543",
        approved=True,
        is_active=True,
        availability_schedule=[],
        unavailable_dates=[],
    )
    db.add(vendor)
    db.commit()
    db.refresh(vendor)
    return user


@pytest.fixture
def vendor(db, vendor_user):
    return db.query(Vendor).filter(Vendor.user_id == vendor_user.id).one()


@pytest.fixture
def vendor_headers(vendor_user):
    return bearer(vendor_user)


@pytest.fixture
def catalog(db):
    """Two active services and one retired one"""
    category = Category(name="Cleaning")
    db.add(category)
    db.flush()

    ac = Service(
        category_id=category.id,
        name="AC Cleaning",
        base_price=120.0,
        thumbnail_uri="https://cdn.test/ac-thumb.png",
        service_icon="https://cdn.test/ac-icon.png",
        image_uri="https://cdn.test/ac.png",
        sub_services=[
            {"name": "Split Unit", "items": 1, "rate": 150.0},
            {"name": "Duct Cleaning", "items": 2, "rate": 300.0},
        ],
        is_active=True,
    )
    deep = Service(category_id=category.id, name="Deep Cleaning", base_price=80.0, sub_services=[], is_active=True)
    retired = Service(category_id=category.id, name="Window Tinting", sub_services=[], is_active=False)
    db.add_all([ac, deep, retired])
    db.commit()
    return {"category": category, "ac": ac, "deep": deep, "retired": retired}


@pytest.fixture
def contract_payload(catalog):
    def build(**overrides):
        payload = {
            "companyName": "Acme Towers LLC",
            "contactPerson": "Layla Haddad",
            "contactPhone": "+971501234567",
            "contactEmail": "layla@acme.test",
            "address": "Tower 2, Business Bay, Dubai",
            "startDate": "2024-03-01",
            "services": [
                {"service_id": catalog["ac"].id, "number_of_units": 4},
                {"service_id": catalog["deep"].id},
            ],
        }
        payload.update(overrides)
        return payload
    return build
