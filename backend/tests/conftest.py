import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AWS_ENDPOINT_URL"] = "http://127.0.0.1:9000"
os.environ["AWS_ACCESS_KEY_ID"] = "test-access-key"
os.environ["AWS_SECRET_ACCESS_KEY"] = "test-secret-key"
os.environ["IDENTITY_JWT_SECRET"] = "test-jwt-secret-with-enough-length-for-hs256"
os.environ["SHARE_LINK_TTL_DAYS"] = "1"
os.environ["GEMINI_LIVE_MODE"] = "false"

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from app.exceptions import Unauthenticated
from app.inference.gemini import GeneratedImage
from app.models import Job
from app.services.access import AccessGateway
from app.services.retry import RetryPolicy
from app.services.simulation import SimulationService
from app.services.storage import ObjectExistsError

PREVIEWS = "fit-previews"
FIXED_NOW = datetime(2026, 10, 18, 10, 15, 0, tzinfo=timezone.utc)


class FakeIdentity:
    def __init__(self, tokens: Optional[Dict[str, str]] = None, known_users=None):
        self.tokens = tokens or {"token-u1": "u1", "token-u2": "u2"}
        self.known_users = set(known_users if known_users is not None else self.tokens.values())

    async def resolve(self, token: str) -> str:
        if token not in self.tokens:
            raise Unauthenticated()
        return self.tokens[token]

    async def user_exists(self, user_id: str) -> bool:
        return user_id in self.known_users


class FakeObjectStore:
    def __init__(self):
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.fail_put: Optional[Exception] = None
        self.fail_sign: Optional[Exception] = None
        self.fail_get: Optional[Exception] = None
        self.hide_objects = False
        self.sign_calls: List[Tuple[str, str, int]] = []
        self.put_calls: List[Tuple[str, str]] = []
        self.sign_put_calls: List[Tuple[str, str, str, int]] = []

    async def exists(self, bucket, key):
        if self.hide_objects:
            return False
        return (bucket, key) in self.objects

    async def put(self, bucket, key, data, content_type):
        self.put_calls.append((bucket, key))
        if self.fail_put:
            raise self.fail_put
        if (bucket, key) in self.objects:
            raise ObjectExistsError(f"Object already exists: {key}")
        self.objects[(bucket, key)] = data

    async def get(self, bucket, key):
        if self.fail_get:
            raise self.fail_get
        return self.objects[(bucket, key)]

    async def sign_get(self, bucket, key, expires_in):
        if self.fail_sign:
            raise self.fail_sign
        self.sign_calls.append((bucket, key, expires_in))
        return f"https://storage.test/{bucket}/{key}?sig={len(self.sign_calls)}&expires={expires_in}"

    async def sign_put(self, bucket, key, content_type, content_length, expires_in):
        if self.fail_sign:
            raise self.fail_sign
        self.sign_put_calls.append((bucket, key, content_type, content_length))
        return f"https://storage.test/upload/{bucket}/{key}?expires={expires_in}"


class InMemoryJobStore:
    def __init__(self):
        self.jobs: Dict[str, Job] = {}
        self.fail_create: Optional[Exception] = None

    async def get(self, job_id):
        return self.jobs.get(job_id)

    async def create(self, job):
        if self.fail_create:
            raise self.fail_create
        assert job.id not in self.jobs
        self.jobs[job.id] = job


class InMemoryMetricsStore:
    def __init__(self):
        self.records: List[dict] = []

    async def record(self, job_id, user_id, duration_ms, status, details):
        self.records.append({
            "job_id": job_id,
            "user_id": user_id,
            "duration_ms": duration_ms,
            "status": status,
            "details": details,
        })


class FakeBackend:
    """Plays back a script of outcomes: bytes succeed, exceptions fail."""

    def __init__(self, outcomes=None, is_live=False):
        self.outcomes = list(outcomes or [])
        self.is_live = is_live
        self.calls: List[tuple] = []

    async def generate(self, subject_path, item_paths, owner_id):
        self.calls.append((subject_path, list(item_paths), owner_id))
        outcome = self.outcomes.pop(0) if self.outcomes else b"generated-image"
        if isinstance(outcome, Exception):
            raise outcome
        return GeneratedImage(outcome)


class FakeClock:
    def __init__(self, start_ms: float = 1_000_000.0):
        self.now_ms = start_ms
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms

    async def sleep(self, ms: float) -> None:
        self.sleeps.append(ms)
        self.advance(ms)


def make_job(job_id="job-1", owner="u1", preview_path="u1/job-1.webp", status="completed_stub") -> Job:
    return Job(
        id=job_id,
        user_id=owner,
        app_id="fit",
        person_path=f"{owner}/person.png",
        item_paths=[],
        preview_path=preview_path,
        duration_ms=1234,
        status=status,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def metrics_store():
    return InMemoryMetricsStore()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_service(identity, object_store, job_store, metrics_store, backend, clock):
    def _make(**overrides):
        kwargs = dict(
            identity=identity,
            object_store=object_store,
            job_store=job_store,
            metrics_store=metrics_store,
            backend=backend,
            previews_bucket=PREVIEWS,
            ttl_days=1,
            retry_policy=RetryPolicy(),
            clock=clock,
            sleep=clock.sleep,
        )
        kwargs.update(overrides)
        return SimulationService(**kwargs)
    return _make


@pytest.fixture
def gateway(identity, object_store, job_store):
    return AccessGateway(
        identity=identity,
        object_store=object_store,
        job_store=job_store,
        previews_bucket=PREVIEWS,
        ttl_days=1,
        now=lambda: FIXED_NOW,
    )


@pytest.fixture
def stored_job(job_store, object_store):
    job = make_job()
    job_store.jobs[job.id] = job
    object_store.objects[(PREVIEWS, job.preview_path)] = b"preview-bytes"
    return job
