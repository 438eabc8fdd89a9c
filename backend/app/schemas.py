"""
Pydantic schemas for request/response validation
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime

# ===== Common Schemas =====

class HealthResponse(BaseModel):
    status: str

class ValidationIssue(BaseModel):
    field: str
    message: str
    code: str

# ===== Upload Schemas =====

class FileDescriptor(BaseModel):
    """Client-declared metadata for one file, before any bytes are stored"""
    id: Optional[str] = None
    name: str
    size: int = Field(ge=0)
    type: str
    category: str
    uploadedAt: Optional[datetime] = None

class UploadValidationResult(BaseModel):
    isValid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

class UploadRequest(BaseModel):
    files: List[FileDescriptor]
    userId: Optional[str] = None

class UploadValidateResponse(BaseModel):
    success: bool = True
    message: str
    warnings: List[ValidationIssue] = Field(default_factory=list)

class PathAssignment(BaseModel):
    category: Literal["subject", "item"]
    fileId: Optional[str] = None
    path: str
    uploadUrl: str

class UploadPaths(BaseModel):
    personPath: str
    itemPaths: List[str]
    uploads: List[PathAssignment]
    message: str

class UploadResponse(BaseModel):
    success: bool = True
    data: UploadPaths
    warnings: List[ValidationIssue] = Field(default_factory=list)

# ===== Simulation Schemas =====

class SimulateRequest(BaseModel):
    personPath: str
    itemPaths: List[str] = Field(default_factory=list, max_length=3)

class SimulateResponse(BaseModel):
    success: bool = True
    jobId: str
    previewUrl: str
    status: str
    duration_ms: int

# ===== Job access Schemas =====

class JobRequest(BaseModel):
    job_id: str = Field(min_length=1)

class JobRecord(BaseModel):
    id: str
    user_id: str
    app_id: str
    person_path: str
    item_paths: List[str]
    pose_id: Optional[str] = None
    preview_path: Optional[str] = None
    duration_ms: Optional[int] = None
    status: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class JobViewResponse(BaseModel):
    success: bool = True
    job: JobRecord
    signedUrl: str
    expiresAt: datetime

class ShareResponse(BaseModel):
    success: bool = True
    signedUrl: str
    expiresAt: datetime
