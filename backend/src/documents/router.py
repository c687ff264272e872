"""Document API endpoints.

Students upload and edit their pending submissions; mentors and admins
review them; admins delete them. Every list and lookup is limited to the
documents the caller may see.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from auth.dependencies import CurrentUser, require_role
from auth.roles import UserRole
from database import get_db
from dependencies import get_change_feed, get_storage_adapter
from domain.documents.ports.object_storage_port import ObjectStoragePort
from infrastructure.storage.s3_storage_adapter import StorageError
from models.user import User
from realtime.change_feed import ChangeFeed
from sync.records import ALL, FilterCriteria
from . import service
from .schemas import (
    DocumentListResponse,
    DocumentRecord,
    DocumentStats,
    DocumentUpdate,
    DownloadResponse,
    ReviewRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Documents"])


@router.post("", response_model=DocumentRecord, status_code=status.HTTP_201_CREATED)
async def upload_document(
    request: Request,
    file: UploadFile = File(...),
    category_id: Optional[UUID] = Form(None),
    description: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    student: User = Depends(require_role(UserRole.STUDENT)),
    storage: ObjectStoragePort = Depends(get_storage_adapter),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Submit a PDF, JPEG or PNG (max 10MB) for review."""
    content = await file.read()
    return await service.submit_document(
        db=db,
        storage=storage,
        feed=feed,
        student=student,
        request=request,
        content=content,
        filename=file.filename or "",
        mime_type=file.content_type or "application/octet-stream",
        category_id=category_id,
        description=description,
    )


@router.get("", response_model=DocumentListResponse)
def list_documents(
    current_user: CurrentUser,
    db: Session = Depends(get_db),
    student_id: Optional[UUID] = Query(None, description="Only this student's documents"),
    query: str = Query("", description="Case-insensitive file name substring"),
    category: str = Query(ALL, description="Category name or 'all'"),
    status_filter: str = Query(
        ALL,
        alias="status",
        pattern="^(all|pending|approved|rejected)$",
        description="Review status or 'all'",
    ),
    date_from: Optional[date] = Query(None, description="Created on or after (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, description="Created on or before (YYYY-MM-DD)"),
):
    """Visible documents, newest first."""
    criteria = FilterCriteria(
        query=query,
        category=category,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
    )
    documents = service.list_documents(db, current_user, student_id, criteria)
    return DocumentListResponse(documents=documents, total=len(documents))


@router.get("/stats", response_model=DocumentStats)
def get_document_stats(
    current_user: CurrentUser,
    db: Session = Depends(get_db),
    student_id: Optional[UUID] = Query(None),
):
    """Counts of visible documents by review status."""
    return service.document_stats(db, current_user, student_id)


@router.get("/{document_id}", response_model=DocumentRecord)
def get_document(
    document_id: UUID,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
):
    """One hydrated document (used to hydrate realtime notifications)."""
    return service.to_record(service.get_visible_document(db, current_user, document_id))


@router.patch("/{document_id}", response_model=DocumentRecord)
def update_document(
    document_id: UUID,
    data: DocumentUpdate,
    request: Request,
    db: Session = Depends(get_db),
    student: User = Depends(require_role(UserRole.STUDENT)),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Change description or category of an own, still pending document."""
    return service.update_document(db, feed, student, document_id, data, request)


@router.post("/{document_id}/review", response_model=DocumentRecord)
def review_document(
    document_id: UUID,
    data: ReviewRequest,
    request: Request,
    db: Session = Depends(get_db),
    reviewer: User = Depends(require_role(UserRole.MENTOR, UserRole.ADMIN)),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Approve or reject a pending document. Rejections need feedback."""
    return service.review_document(
        db, feed, reviewer, document_id, data.action, data.feedback, request
    )


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_role(UserRole.ADMIN)),
    storage: ObjectStoragePort = Depends(get_storage_adapter),
    feed: ChangeFeed = Depends(get_change_feed),
):
    await service.delete_document(db, storage, feed, admin, document_id, request)


@router.get("/{document_id}/download")
async def download_document(
    document_id: UUID,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
    storage: ObjectStoragePort = Depends(get_storage_adapter),
):
    """Stream the stored file back as an attachment."""
    document = service.get_visible_document(db, current_user, document_id)

    try:
        file_stream = await storage.retrieve_file(document.file_path)
    except FileNotFoundError:
        logger.error(
            f"File not found in storage: storage_key={document.file_path}",
            extra={"document_id": document_id},
        )
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found in storage",
        )
    except StorageError as e:
        logger.error(f"Storage error during download: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to download file",
        )

    return StreamingResponse(
        file_stream,
        media_type=document.mime_type,
        headers={
            "Content-Disposition": f'attachment; filename="{document.file_name}"'
        },
    )


@router.get("/{document_id}/presigned-url", response_model=DownloadResponse)
async def get_presigned_url(
    document_id: UUID,
    current_user: CurrentUser,
    expires_in: int = Query(3600, ge=60, le=7 * 24 * 3600),
    db: Session = Depends(get_db),
    storage: ObjectStoragePort = Depends(get_storage_adapter),
):
    """Time-limited direct download link from object storage."""
    document = service.get_visible_document(db, current_user, document_id)

    try:
        url = await storage.generate_presigned_url(
            document.file_path, expires_in_seconds=expires_in, download_name=document.file_name
        )
    except FileNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found in storage",
        )
    except StorageError as e:
        logger.error(f"Storage error generating presigned URL: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate download link",
        )

    return DownloadResponse(url=url, expires_in=expires_in)
