from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import Job, SimMetric


class JobStore(Protocol):
    async def get(self, job_id: str) -> Optional[Job]: ...

    async def create(self, job: Job) -> None: ...


class MetricsStore(Protocol):
    async def record(
        self,
        job_id: Optional[str],
        user_id: str,
        duration_ms: int,
        status: str,
        details: str,
    ) -> None: ...


class SqlJobStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, job_id: str) -> Optional[Job]:
        # id-only lookup; ownership is checked by the caller
        async with self._session_factory() as db:
            res = await db.execute(select(Job).filter(Job.id == job_id))
            return res.scalar_one_or_none()

    async def create(self, job: Job) -> None:
        async with self._session_factory() as db:
            db.add(job)
            await db.commit()


class SqlMetricsStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def record(self, job_id, user_id, duration_ms, status, details) -> None:
        async with self._session_factory() as db:
            db.add(SimMetric(
                job_id=job_id,
                user_id=user_id,
                duration_ms=duration_ms,
                status=status,
                details=details,
            ))
            await db.commit()
