"""
Upload routes - pre-validation and storage path assignment
"""
from fastapi import APIRouter, Depends
from typing import List, Tuple

from ..auth import get_bearer_token
from ..config import settings
from ..deps import get_identity, get_storage
from ..exceptions import Forbidden, InvalidInput, NotFound, StorageFailed
from ..logger import logger, log_error
from ..schemas import (
    PathAssignment,
    UploadPaths,
    UploadRequest,
    UploadResponse,
    UploadValidationResult,
    UploadValidateResponse,
)
from ..services.validation import ALLOWED_TYPES, ITEM, SUBJECT, assign_path, validate_upload

router = APIRouter(prefix="/api/fit/upload", tags=["Upload"])


async def _admit(body: UploadRequest, token: str, identity) -> Tuple[str, UploadValidationResult]:
    """
    Resolve the owner and run the authoritative server-side validation.
    Client-side results are never trusted.
    """
    caller_id = await identity.resolve(token)
    owner_id = body.userId or caller_id

    if owner_id != caller_id:
        log_error("Upload owner does not match caller", "upload", user_id=caller_id, owner_id=owner_id)
        raise Forbidden("Uploads can only be made into your own namespace")

    result = validate_upload(body.files)
    if not result.isValid:
        log_error(
            "Upload validation failed",
            "validation",
            user_id=owner_id,
            error_codes=[e.code for e in result.errors],
        )
        raise InvalidInput(
            "Upload validation failed",
            extra={"errors": [e.model_dump() for e in result.errors]},
        )

    if not await identity.user_exists(owner_id):
        raise NotFound("User not found")

    return owner_id, result


@router.post("/validate", response_model=UploadValidateResponse)
async def validate_upload_request(
    body: UploadRequest,
    token: str = Depends(get_bearer_token),
    identity=Depends(get_identity),
):
    """Check a candidate file set without assigning storage paths"""
    _, result = await _admit(body, token, identity)
    return UploadValidateResponse(message="Upload validation passed", warnings=result.warnings)


@router.post("", response_model=UploadResponse)
async def request_upload_paths(
    body: UploadRequest,
    token: str = Depends(get_bearer_token),
    identity=Depends(get_identity),
    storage=Depends(get_storage),
):
    """
    Validate the file set and hand out one storage path per file, each with
    a presigned PUT URL for uploading straight into the originals bucket.
    """
    owner_id, result = await _admit(body, token, identity)

    uploads: List[PathAssignment] = []
    for f in sorted(body.files, key=lambda f: f.category != SUBJECT):
        path = assign_path(owner_id, f)
        content_type = "image/jpeg" if ALLOWED_TYPES[f.type] == "jpg" else f.type
        try:
            # bound to the declared size so the upload cannot exceed what was validated
            upload_url = await storage.sign_put(
                settings.S3_ORIGINALS_BUCKET, path, content_type, f.size, settings.UPLOAD_URL_TTL_SECONDS
            )
        except Exception as e:
            log_error(e, "storage", user_id=owner_id, action="sign_upload", path=path)
            raise StorageFailed("Failed to create upload URL", details=str(e))
        uploads.append(PathAssignment(
            category=SUBJECT if f.category == SUBJECT else ITEM,
            fileId=f.id,
            path=path,
            uploadUrl=upload_url,
        ))

    logger.info(
        "Upload paths assigned",
        extra={"user_id": owner_id, "file_count": len(uploads)},
    )

    return UploadResponse(
        data=UploadPaths(
            personPath=next(u.path for u in uploads if u.category == SUBJECT),
            itemPaths=[u.path for u in uploads if u.category == ITEM],
            uploads=uploads,
            message="Validation passed, ready for upload",
        ),
        warnings=result.warnings,
    )
