"""Validation rules for document uploads and reviews

Upload and review preconditions are checked before any storage or database
work happens, both by the API and by the client library.
"""

import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .document_status import DocumentStatus


# Supported MIME types (PDF and common image scans)
SUPPORTED_MIME_TYPES = {
    'application/pdf',
    'image/jpeg',
    'image/jpg',
    'image/png',
}

# File size limit (default 10MB, configurable via env)
MAX_FILE_SIZE = int(os.getenv('MAX_UPLOAD_SIZE_BYTES', 10 * 1024 * 1024))

MAX_DESCRIPTION_LENGTH = 500
MAX_FEEDBACK_LENGTH = 1000


class UploadValidationError(ValueError):
    """Raised when an upload violates a precondition.

    Attributes:
        reason: Which rule failed ("type", "size", "empty", "filename", "description", "category")
    """

    def __init__(self, message: str, reason: str):
        self.reason = reason
        super().__init__(message)


class ReviewValidationError(ValueError):
    """Raised when a review action is not acceptable (e.g. reject without feedback)."""


class ReviewAction(str, Enum):
    """Reviewer decisions"""
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def target_status(self) -> DocumentStatus:
        if self is ReviewAction.APPROVE:
            return DocumentStatus.APPROVED
        return DocumentStatus.REJECTED


@dataclass(frozen=True)
class ReviewDecision:
    """A validated review: the action and its normalized feedback."""
    action: ReviewAction
    feedback: Optional[str]

    @property
    def status(self) -> DocumentStatus:
        return self.action.target_status


def is_supported_mime_type(mime_type: str) -> bool:
    """Check if MIME type is supported for upload

    Example:
        >>> is_supported_mime_type('application/pdf')
        True
        >>> is_supported_mime_type('application/msword')
        False
    """
    return mime_type in SUPPORTED_MIME_TYPES


def validate_file_size(size_bytes: int, max_size: Optional[int] = None) -> Tuple[bool, Optional[str]]:
    """Validate file size is within limits

    Args:
        size_bytes: File size in bytes
        max_size: Maximum allowed size (defaults to MAX_FILE_SIZE)

    Returns:
        Tuple of (is_valid, error_message)

    Example:
        >>> validate_file_size(1024)
        (True, None)
        >>> validate_file_size(0)
        (False, 'File is empty (0 bytes)')
    """
    if max_size is None:
        max_size = MAX_FILE_SIZE

    if size_bytes == 0:
        return False, "File is empty (0 bytes)"

    if size_bytes > max_size:
        return False, f"File size must be less than {max_size // (1024 * 1024)}MB (got {size_bytes} bytes)"

    return True, None


def validate_filename(filename: str) -> Tuple[bool, Optional[str]]:
    """Validate an uploaded filename

    Validation rules:
    - Not empty
    - Max 255 characters
    - No path traversal (../, ..\\)
    - No null bytes or control characters

    Example:
        >>> validate_filename('report.pdf')
        (True, None)
        >>> validate_filename('')
        (False, 'Filename cannot be empty')
    """
    if not filename or len(filename.strip()) == 0:
        return False, "Filename cannot be empty"

    if len(filename) > 255:
        return False, f"Filename exceeds 255 characters (got {len(filename)})"

    if '..' in filename or '/' in filename or '\\' in filename:
        return False, "Filename contains path traversal or directory separators"

    if '\x00' in filename:
        return False, "Filename contains null bytes"

    if any(ord(c) < 32 for c in filename):
        return False, "Filename contains control characters"

    return True, None


def sanitize_filename(filename: str) -> str:
    """Sanitize filename for safe display and storage metadata

    Example:
        >>> sanitize_filename('../../report.pdf')
        'report.pdf'
        >>> sanitize_filename('my report.pdf')
        'my_report.pdf'
    """
    # Remove path components
    filename = os.path.basename(filename)

    # Replace problematic characters with underscore
    filename = re.sub(r'[^\w\s.-]', '_', filename)

    # Collapse multiple spaces/underscores
    filename = re.sub(r'[\s_]+', '_', filename)

    if len(filename) > 255:
        name, ext = os.path.splitext(filename)
        max_name_len = 255 - len(ext)
        filename = name[:max_name_len] + ext

    return filename


def normalize_description(description: Optional[str]) -> Optional[str]:
    """Trim a description; empty becomes None.

    Raises:
        UploadValidationError: If longer than MAX_DESCRIPTION_LENGTH
    """
    if description is None:
        return None
    description = description.strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise UploadValidationError(
            f"Description must be less than {MAX_DESCRIPTION_LENGTH} characters",
            reason="description",
        )
    return description or None


def validate_upload(
    filename: str,
    mime_type: str,
    size_bytes: int,
    description: Optional[str] = None,
    max_size: Optional[int] = None,
) -> Optional[str]:
    """Check every upload precondition at once.

    Returns:
        The normalized description

    Raises:
        UploadValidationError: On the first failed rule
    """
    valid, error = validate_filename(filename)
    if not valid:
        raise UploadValidationError(error, reason="filename")

    if not is_supported_mime_type(mime_type):
        raise UploadValidationError(
            "Only PDF, JPG, and PNG files are allowed",
            reason="type",
        )

    valid, error = validate_file_size(size_bytes, max_size)
    if not valid:
        raise UploadValidationError(error, reason="empty" if size_bytes == 0 else "size")

    return normalize_description(description)


def validate_review(action, feedback: Optional[str]) -> ReviewDecision:
    """Validate a reviewer decision before it is sent or applied.

    Rejections require non-empty feedback; feedback is trimmed and capped at
    MAX_FEEDBACK_LENGTH characters for both actions.

    Args:
        action: ReviewAction or its string value ("approve" / "reject")
        feedback: Free-text feedback (may be None)

    Returns:
        ReviewDecision with feedback normalized (empty becomes None)

    Raises:
        ReviewValidationError: If the action is unknown or feedback rules fail

    Example:
        >>> validate_review("approve", "  ").feedback is None
        True
    """
    try:
        action = ReviewAction(action)
    except ValueError:
        raise ReviewValidationError(f"Unknown review action: {action!r}")

    text = (feedback or "").strip()

    if action is ReviewAction.REJECT and not text:
        raise ReviewValidationError("Feedback is required for rejections")

    if len(text) > MAX_FEEDBACK_LENGTH:
        raise ReviewValidationError(
            f"Feedback must be less than {MAX_FEEDBACK_LENGTH} characters"
        )

    return ReviewDecision(action=action, feedback=text or None)
