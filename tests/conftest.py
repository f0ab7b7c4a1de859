import io
from datetime import datetime, timezone

import pytest
from botocore.response import StreamingBody
from sqlalchemy.pool import StaticPool

from s3vault.config import Settings
from s3vault.crypto import CredentialCipher
from s3vault.db import init_db, make_engine, make_session_factory
from s3vault.errors import ObjectNotFound
from s3vault.models import UNLIMITED, User
from s3vault.registry import BucketRegistry

MASTER_SECRET = "test-master-secret"
JWT_SECRET = "test-jwt-secret"


class FakeStorage:
    """In-memory stand-in for StorageSession with S3 delimiter semantics."""

    def __init__(self, objects=None, bucket_name="test-bucket"):
        self.bucket_name = bucket_name
        self.objects = dict(objects or {})
        self.content_types = {}
        self.calls = []

    def list_prefix(self, prefix="", delimiter="/", max_keys=1000):
        self.calls.append(("list_prefix", prefix, delimiter, max_keys))
        common, contents = [], []
        for key in sorted(self.objects):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            if delimiter in rest:
                folder = prefix + rest.split(delimiter, 1)[0] + delimiter
                if folder not in common:
                    common.append(folder)
            else:
                contents.append({
                    "Key": key,
                    "Size": len(self.objects[key]),
                    "LastModified": datetime(2024, 1, 2, tzinfo=timezone.utc),
                })
        return {
            "CommonPrefixes": [{"Prefix": p} for p in common],
            "Contents": contents,
            "IsTruncated": False,
        }

    def put_empty(self, key, content_type):
        self.calls.append(("put_empty", key, content_type))
        self.objects[key] = b""
        self.content_types[key] = content_type

    def head(self, key):
        if key not in self.objects:
            raise ObjectNotFound(f"File not found: {key}")
        return {"ContentLength": len(self.objects[key])}

    def get(self, key):
        self.head(key)
        data = self.objects[key]
        return {
            "Body": StreamingBody(io.BytesIO(data), len(data)),
            "ContentType": self.content_types.get(key),
            "ContentLength": len(data),
        }

    def presign_get(self, key, expires_in):
        return f"https://{self.bucket_name}.s3.amazonaws.com/{key}?X-Amz-Expires={expires_in}"

    def probe(self):
        self.calls.append(("probe",))


@pytest.fixture(scope="session")
def cipher():
    return CredentialCipher(MASTER_SECRET)


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make_user(email, bucket_limit=3, name="Test User"):
        user = User(email=email, name=name, password_hash="x", bucket_limit=bucket_limit)
        db.add(user)
        db.commit()
        return user
    return _make_user


@pytest.fixture
def alice(make_user):
    return make_user("alice@example.com", bucket_limit=2, name="Alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob@example.com", bucket_limit=UNLIMITED, name="Bob")


@pytest.fixture
def registry(db, cipher):
    return BucketRegistry(db, cipher)


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        encryption_key=MASTER_SECRET,
        jwt_secret=JWT_SECRET,
        log_json=False,
    )


@pytest.fixture
def fake_storage():
    return FakeStorage({
        "docs/": b"",
        "docs/a.txt": b"hello",
        "docs/sub/b.png": b"\x89PNG",
        "photo.jpg": b"jpeg-bytes",
        "report.pdf": b"%PDF",
    })
