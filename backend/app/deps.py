"""
Service wiring for the routers. Tests replace these through
app.dependency_overrides.
"""
from functools import lru_cache

from .auth import get_identity_verifier
from .config import settings
from .db import AsyncSessionLocal
from .inference.gemini import get_generation_backend
from .services.access import AccessGateway
from .services.job_store import SqlJobStore, SqlMetricsStore
from .services.retry import DEFAULT_RETRY_POLICY
from .services.simulation import SimulationService
from .services.storage import get_object_store


def get_identity():
    return get_identity_verifier()


def get_storage():
    return get_object_store()


@lru_cache
def get_simulation_service() -> SimulationService:
    return SimulationService(
        identity=get_identity_verifier(),
        object_store=get_object_store(),
        job_store=SqlJobStore(AsyncSessionLocal),
        metrics_store=SqlMetricsStore(AsyncSessionLocal),
        backend=get_generation_backend(),
        previews_bucket=settings.S3_PREVIEWS_BUCKET,
        ttl_days=settings.SHARE_LINK_TTL_DAYS,
        retry_policy=DEFAULT_RETRY_POLICY.with_overrides(
            max_duration_ms=settings.GENERATION_MAX_DURATION_MS,
            timeout_ms=settings.GENERATION_TIMEOUT_MS,
            retry_attempts=settings.GENERATION_RETRY_ATTEMPTS,
            retry_delay_ms=settings.GENERATION_RETRY_DELAY_MS,
        ),
    )


@lru_cache
def get_access_gateway() -> AccessGateway:
    return AccessGateway(
        identity=get_identity_verifier(),
        object_store=get_object_store(),
        job_store=SqlJobStore(AsyncSessionLocal),
        previews_bucket=settings.S3_PREVIEWS_BUCKET,
        ttl_days=settings.SHARE_LINK_TTL_DAYS,
    )
