"""
Signed access to generated previews.

Every call re-verifies the caller and re-issues a short-lived signed URL;
nothing is cached between requests.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from urllib.parse import quote

from ..exceptions import Forbidden, NotFound, StorageFailed
from ..inference.gemini import PREVIEW_CONTENT_TYPE, PREVIEW_EXTENSION
from ..logger import logger, log_error
from ..models import Job

MIN_SIGNED_URL_TTL_SECONDS = 60
DOWNLOAD_FILENAME_PREFIX = "fit-simulation"


def signed_url_ttl_seconds(ttl_days: float) -> int:
    return max(MIN_SIGNED_URL_TTL_SECONDS, math.floor(ttl_days * 86400))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def download_filename(now: datetime) -> str:
    return f"{DOWNLOAD_FILENAME_PREFIX}_{now.strftime('%Y%m%dT%H%M%S')}.{PREVIEW_EXTENSION}"


def content_disposition(filename: str) -> str:
    return f"attachment; filename*=UTF-8''{quote(filename)}"


@dataclass(frozen=True)
class SignedLink:
    url: str
    expires_at: datetime


@dataclass(frozen=True)
class JobView:
    job: Job
    link: SignedLink


@dataclass(frozen=True)
class PreviewFile:
    data: bytes
    content_type: str = PREVIEW_CONTENT_TYPE
    filename: Optional[str] = None


class AccessGateway:
    def __init__(
        self,
        identity,
        object_store,
        job_store,
        previews_bucket: str,
        ttl_days: float,
        now: Callable[[], datetime] = utcnow,
    ):
        self.identity = identity
        self.object_store = object_store
        self.job_store = job_store
        self.previews_bucket = previews_bucket
        self.ttl_seconds = signed_url_ttl_seconds(ttl_days)
        self._now = now

    async def _authorize(self, token: str, job_id: str) -> Job:
        user_id = await self.identity.resolve(token)

        job = await self.job_store.get(job_id)
        if job is None:
            logger.warning(f"Job not found: {job_id}", extra={"job_id": job_id, "user_id": user_id})
            raise NotFound("Job not found")

        if job.user_id != user_id:
            log_error(
                "Ownership verification failed",
                "sharing",
                job_id=job_id,
                user_id=user_id,
            )
            raise Forbidden("Access denied")

        if not job.preview_path:
            raise NotFound("No preview available for this job")
        return job

    async def _sign(self, job: Job) -> SignedLink:
        issued_at = self._now()
        try:
            url = await self.object_store.sign_get(self.previews_bucket, job.preview_path, self.ttl_seconds)
        except Exception as e:
            log_error(e, "storage", job_id=job.id, action="sign_preview")
            raise StorageFailed("Failed to create signed URL", details=str(e))
        return SignedLink(url=url, expires_at=issued_at + timedelta(seconds=self.ttl_seconds))

    async def _read(self, job: Job) -> bytes:
        try:
            return await self.object_store.get(self.previews_bucket, job.preview_path)
        except Exception as e:
            log_error(e, "storage", job_id=job.id, action="download_preview")
            raise StorageFailed("Failed to load preview image", details=str(e))

    async def view(self, token: str, job_id: str) -> JobView:
        job = await self._authorize(token, job_id)
        return JobView(job=job, link=await self._sign(job))

    async def share(self, token: str, job_id: str) -> SignedLink:
        job = await self._authorize(token, job_id)
        link = await self._sign(job)
        logger.info("Share link issued", extra={"job_id": job_id, "expires_at": link.expires_at.isoformat()})
        return link

    async def fetch_preview(self, token: str, job_id: str) -> PreviewFile:
        job = await self._authorize(token, job_id)
        return PreviewFile(data=await self._read(job))

    async def download(self, token: str, job_id: str) -> PreviewFile:
        job = await self._authorize(token, job_id)
        data = await self._read(job)
        # named after the download time, not the job's creation time
        return PreviewFile(data=data, filename=download_filename(self._now()))
