"""
Fit routes - simulation submission and signed access to results
"""
from fastapi import APIRouter, Depends, Path
from fastapi.responses import Response

from ..auth import get_bearer_token
from ..deps import get_access_gateway, get_simulation_service
from ..logger import logger
from ..schemas import (
    JobRecord,
    JobRequest,
    JobViewResponse,
    ShareResponse,
    SimulateRequest,
    SimulateResponse,
)
from ..services.access import AccessGateway, content_disposition
from ..services.simulation import SimulationService

router = APIRouter(prefix="/api/fit", tags=["Fit"])


@router.post("/simulate", response_model=SimulateResponse)
async def simulate(
    body: SimulateRequest,
    token: str = Depends(get_bearer_token),
    service: SimulationService = Depends(get_simulation_service),
):
    """Generate a try-on preview for the caller's uploaded photos"""
    result = await service.submit(token, body.personPath, body.itemPaths)
    return SimulateResponse(
        jobId=result.job_id,
        previewUrl=result.preview_url,
        status=result.status,
        duration_ms=result.duration_ms,
    )


@router.get("/job/{job_id}", response_model=JobViewResponse)
async def get_job(
    job_id: str = Path(..., min_length=1),
    token: str = Depends(get_bearer_token),
    gateway: AccessGateway = Depends(get_access_gateway),
):
    """Job record plus a freshly signed preview URL"""
    view = await gateway.view(token, job_id)
    return JobViewResponse(
        job=JobRecord.model_validate(view.job),
        signedUrl=view.link.url,
        expiresAt=view.link.expires_at,
    )


@router.post("/preview")
async def get_preview(
    body: JobRequest,
    token: str = Depends(get_bearer_token),
    gateway: AccessGateway = Depends(get_access_gateway),
):
    preview = await gateway.fetch_preview(token, body.job_id)
    return Response(
        content=preview.data,
        media_type=preview.content_type,
        headers={"Cache-Control": "private, no-store"},
    )


@router.get("/download/{job_id}")
async def download(
    job_id: str = Path(..., min_length=1),
    token: str = Depends(get_bearer_token),
    gateway: AccessGateway = Depends(get_access_gateway),
):
    preview = await gateway.download(token, job_id)
    logger.info(f"Preview downloaded: {job_id}", extra={"job_id": job_id})
    return Response(
        content=preview.data,
        media_type=preview.content_type,
        headers={
            "Content-Disposition": content_disposition(preview.filename),
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Pragma": "no-cache",
            "Expires": "0",
        },
    )


@router.post("/share", response_model=ShareResponse)
async def share(
    body: JobRequest,
    token: str = Depends(get_bearer_token),
    gateway: AccessGateway = Depends(get_access_gateway),
):
    """Issue a time-boxed link that works without authentication"""
    link = await gateway.share(token, body.job_id)
    return ShareResponse(signedUrl=link.url, expiresAt=link.expires_at)
