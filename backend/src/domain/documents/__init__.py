"""Documents domain module - review lifecycle, upload and review rules, storage port"""

from .document_status import DocumentStatus, can_transition, ALLOWED_TRANSITIONS
from .validation import (
    is_supported_mime_type,
    validate_file_size,
    validate_filename,
    sanitize_filename,
    validate_upload,
    validate_review,
    ReviewAction,
    ReviewDecision,
    ReviewValidationError,
    UploadValidationError,
    SUPPORTED_MIME_TYPES,
    MAX_FILE_SIZE,
    MAX_FEEDBACK_LENGTH,
    MAX_DESCRIPTION_LENGTH,
)

__all__ = [
    "DocumentStatus",
    "can_transition",
    "ALLOWED_TRANSITIONS",
    "is_supported_mime_type",
    "validate_file_size",
    "validate_filename",
    "sanitize_filename",
    "validate_upload",
    "validate_review",
    "ReviewAction",
    "ReviewDecision",
    "ReviewValidationError",
    "UploadValidationError",
    "SUPPORTED_MIME_TYPES",
    "MAX_FILE_SIZE",
    "MAX_FEEDBACK_LENGTH",
    "MAX_DESCRIPTION_LENGTH",
]
