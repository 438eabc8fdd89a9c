"""
Job submission: ownership check, generation under the retry policy,
preview storage, and the single write of the job record.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from ..exceptions import (
    FitAppError,
    Forbidden,
    GenerationFailed,
    InternalError,
    InvalidInput,
    StorageFailed,
)
from ..inference.gemini import PREVIEW_EXTENSION
from ..logger import logger, log_error
from ..models import (
    Job,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_COMPLETED_STUB,
    JOB_STATUS_DENIED,
    JOB_STATUS_ERROR,
)
from .access import signed_url_ttl_seconds, utcnow
from .retry import DEFAULT_RETRY_POLICY, RetryExhausted, RetryPolicy, RetryRunner, monotonic_ms, sleep_ms
from .validation import ITEMS_MAX, is_owned_path


def preview_path_for(owner_id: str, job_id: str) -> str:
    return f"{owner_id}/{job_id}.{PREVIEW_EXTENSION}"


@dataclass(frozen=True)
class SimulationResult:
    job_id: str
    preview_url: str
    status: str
    duration_ms: int


class SimulationService:
    def __init__(
        self,
        identity,
        object_store,
        job_store,
        metrics_store,
        backend,
        previews_bucket: str,
        ttl_days: float,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        clock: Callable[[], float] = monotonic_ms,
        sleep: Callable[[float], Awaitable[None]] = sleep_ms,
        new_job_id: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.identity = identity
        self.object_store = object_store
        self.job_store = job_store
        self.metrics_store = metrics_store
        self.backend = backend
        self.previews_bucket = previews_bucket
        self.ttl_seconds = signed_url_ttl_seconds(ttl_days)
        self.retry_policy = retry_policy
        self._clock = clock
        self._sleep = sleep
        self._new_job_id = new_job_id

    async def _record_metrics(self, job_id: Optional[str], user_id: str, duration_ms: int, status: str, details: str) -> None:
        try:
            await self.metrics_store.record(job_id, user_id, duration_ms, status, details)
        except Exception as e:
            logger.error(
                f"Failed to record simulation metrics: {e}",
                extra={"job_id": job_id, "user_id": user_id, "metrics_status": status},
            )

    async def submit(self, token: str, person_path: str, item_paths: Sequence[str] = ()) -> SimulationResult:
        started = self._clock()
        elapsed = lambda: int(self._clock() - started)
        user_id: Optional[str] = None
        job_id: Optional[str] = None
        item_paths = list(item_paths)

        try:
            user_id = await self.identity.resolve(token)

            if len(item_paths) > ITEMS_MAX:
                raise InvalidInput(
                    "Too many item paths",
                    details=f"At most {ITEMS_MAX} item paths are allowed, got {len(item_paths)}",
                )

            for label, path in [("Person", person_path)] + [("Item", p) for p in item_paths]:
                if not is_owned_path(user_id, path):
                    await self._record_metrics(
                        None, user_id, elapsed(), JOB_STATUS_DENIED,
                        f"{label} path ownership validation failed",
                    )
                    raise Forbidden(
                        "Ownership validation failed",
                        details=f'{label} path must start with "{user_id}/" but got: {path or "empty"}',
                    )

            job_id = self._new_job_id()
            logger.info(
                "Simulation started",
                extra={"job_id": job_id, "user_id": user_id, "item_count": len(item_paths)},
            )

            runner = RetryRunner(self.retry_policy, clock=self._clock, sleep=self._sleep)
            try:
                generated = await runner.execute(
                    lambda: self.backend.generate(person_path, item_paths, user_id)
                )
            except RetryExhausted as e:
                log_error(e, "simulation", job_id=job_id, user_id=user_id)
                duration = elapsed()
                last = str(e.last_error) if e.last_error else str(e)
                await self._record_metrics(job_id, user_id, duration, JOB_STATUS_ERROR, f"Generation failed: {last}")
                raise GenerationFailed(details=last, duration_ms=duration)

            preview_path = preview_path_for(user_id, job_id)
            preview_url = await self._store_preview(job_id, user_id, preview_path, generated, elapsed)

            status = JOB_STATUS_COMPLETED if self.backend.is_live else JOB_STATUS_COMPLETED_STUB
            duration = elapsed()

            try:
                await self.job_store.create(Job(
                    id=job_id,
                    user_id=user_id,
                    app_id="fit",
                    person_path=person_path,
                    item_paths=item_paths,
                    pose_id=None,
                    preview_path=preview_path,
                    duration_ms=duration,
                    status=status,
                    created_at=utcnow(),
                ))
            except Exception as e:
                # the preview exists and is signed; the caller still gets it
                logger.error(f"Failed to record job in database: {e}", extra={"job_id": job_id})

            await self._record_metrics(job_id, user_id, duration, status, "Simulation completed")
            logger.info(
                "Simulation completed",
                extra={"job_id": job_id, "user_id": user_id, "job_status": status, "duration_ms": duration},
            )
            return SimulationResult(job_id=job_id, preview_url=preview_url, status=status, duration_ms=duration)

        except FitAppError:
            raise
        except Exception as e:
            duration = elapsed()
            log_error(e, "simulation", job_id=job_id, user_id=user_id)
            if user_id:
                await self._record_metrics(job_id, user_id, duration, JOB_STATUS_ERROR, f"Error: {e}")
            raise InternalError("Internal server error during simulation", duration_ms=duration)

    async def _store_preview(self, job_id, user_id, preview_path, generated, elapsed) -> str:
        async def fail(message: str, details: str):
            duration = elapsed()
            await self._record_metrics(job_id, user_id, duration, JOB_STATUS_ERROR, f"{message}: {details}")
            return StorageFailed(message, details=details, duration_ms=duration)

        try:
            await self.object_store.put(self.previews_bucket, preview_path, generated.data, generated.content_type)
        except Exception as e:
            log_error(e, "storage", job_id=job_id, user_id=user_id, action="upload_preview", preview_path=preview_path)
            raise await fail("Failed to store preview image", str(e))

        try:
            present = await self.object_store.exists(self.previews_bucket, preview_path)
        except Exception as e:
            log_error(e, "storage", job_id=job_id, user_id=user_id, action="verify_preview")
            present = False
        if not present:
            raise await fail("Failed to verify preview image storage", "Preview image was not found after upload")

        try:
            return await self.object_store.sign_get(self.previews_bucket, preview_path, self.ttl_seconds)
        except Exception as e:
            log_error(e, "storage", job_id=job_id, user_id=user_id, action="sign_preview")
            raise await fail("Failed to create preview URL", str(e))
