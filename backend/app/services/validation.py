"""
Upload pre-validation.

Runs over the declared metadata of a whole candidate set before anything is
written to storage. Admission is all-or-nothing: any error rejects the set.
"""
from __future__ import annotations

import uuid
from typing import Iterable, List, Optional, Sequence, Tuple

from ..schemas import FileDescriptor, UploadValidationResult, ValidationIssue

SUBJECT = "subject"
ITEM = "item"

SUBJECT_MIN = 1
SUBJECT_MAX = 1
ITEMS_MAX = 3

SOFT_MAX_SIZE = 5 * 1024 * 1024
HARD_MAX_SIZE = 8 * 1024 * 1024

ALLOWED_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
}


def validate_file(file: FileDescriptor) -> Tuple[List[ValidationIssue], List[ValidationIssue]]:
    """Return (errors, warnings) for a single file."""
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    if file.type not in ALLOWED_TYPES:
        errors.append(ValidationIssue(
            field="file",
            message=f"Unsupported file type '{file.type}'. Only JPG and PNG files are allowed.",
            code="INVALID_FILE_TYPE",
        ))

    if file.size > HARD_MAX_SIZE:
        errors.append(ValidationIssue(
            field="file",
            message="File is too large. Files must be 8MB or smaller.",
            code="FILE_SIZE_EXCEEDED",
        ))
    elif file.size > SOFT_MAX_SIZE:
        warnings.append(ValidationIssue(
            field="file",
            message="Files under 5MB are recommended for faster processing.",
            code="FILE_SIZE_RECOMMENDATION",
        ))

    return errors, warnings


def validate_category_constraints(files: Sequence[FileDescriptor]) -> List[ValidationIssue]:
    errors: List[ValidationIssue] = []

    for f in files:
        if f.category not in (SUBJECT, ITEM):
            errors.append(ValidationIssue(
                field="category",
                message=f"Unknown category '{f.category}'.",
                code="INVALID_CATEGORY",
            ))

    subject_count = sum(1 for f in files if f.category == SUBJECT)
    item_count = sum(1 for f in files if f.category == ITEM)

    if subject_count < SUBJECT_MIN:
        errors.append(ValidationIssue(
            field=SUBJECT,
            message=f"At least {SUBJECT_MIN} photo of yourself is required.",
            code="SUBJECT_REQUIRED",
        ))
    if subject_count > SUBJECT_MAX:
        errors.append(ValidationIssue(
            field=SUBJECT,
            message=f"Only {SUBJECT_MAX} photo of yourself can be uploaded.",
            code="CATEGORY_LIMIT_EXCEEDED",
        ))
    if item_count > ITEMS_MAX:
        errors.append(ValidationIssue(
            field="items",
            message=f"At most {ITEMS_MAX} item photos can be uploaded.",
            code="TOO_MANY_ITEMS",
        ))

    return errors


def validate_upload(files: Sequence[FileDescriptor]) -> UploadValidationResult:
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    for f in files:
        file_errors, file_warnings = validate_file(f)
        errors.extend(file_errors)
        warnings.extend(file_warnings)

    errors.extend(validate_category_constraints(files))

    return UploadValidationResult(isValid=not errors, errors=errors, warnings=warnings)


def determine_category(existing: Iterable[FileDescriptor]) -> str:
    """The first file picked is the subject, every later one is an item."""
    return ITEM if any(f.category == SUBJECT for f in existing) else SUBJECT


def can_add_file(existing: Sequence[FileDescriptor], new_file: FileDescriptor) -> Tuple[bool, List[ValidationIssue]]:
    file_errors, _ = validate_file(new_file)
    if file_errors:
        return False, file_errors

    candidate = new_file.model_copy(update={"category": determine_category(existing)})
    category_errors = [
        e for e in validate_category_constraints([*existing, candidate])
        # a lone item set is still waiting for its subject
        if e.code != "SUBJECT_REQUIRED"
    ]
    if category_errors:
        return False, category_errors
    return True, []


def file_extension(file: FileDescriptor) -> str:
    """Extension for the stored object, taken from the validated type, never the client's file name."""
    return ALLOWED_TYPES.get(file.type, "bin")


def assign_path(owner_id: str, file: FileDescriptor) -> str:
    return f"{owner_id}/{uuid.uuid4()}.{file_extension(file)}"


def is_owned_path(owner_id: str, path: Optional[str]) -> bool:
    """Ownership namespace check: the path must live under '<owner_id>/'."""
    if not path or not owner_id or not path.startswith(f"{owner_id}/"):
        return False
    return ".." not in path.split("/")
