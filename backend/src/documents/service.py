"""Document service - visibility rules and document mutations.

Who sees what:
- student: their own documents
- mentor: documents of students assigned to them
- admin: everything

Documents outside a viewer's scope are reported as 404, never 403, so their
existence is not revealed. Every committed mutation is audited and
published to the realtime change feed.
"""

import logging
from datetime import datetime, timezone
from io import BytesIO
from typing import List, Optional, Set
from uuid import UUID

from fastapi import HTTPException, Request, status
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from auth.roles import UserRole
from audit.service import log_from_request
from domain.documents.document_status import DocumentStatus, can_transition, is_reviewed
from domain.documents.ports.object_storage_port import ObjectStoragePort
from domain.documents.validation import (
    ReviewValidationError,
    UploadValidationError,
    is_supported_mime_type,
    sanitize_filename,
    validate_review,
    validate_upload,
)
from infrastructure.storage.s3_storage_adapter import StorageError
from models.assignment import Assignment
from models.category import Category
from models.document import Document
from models.user import User
from observability.metrics import (
    documents_deleted_total,
    documents_reviewed_total,
    documents_uploaded_total,
)
from realtime.change_feed import ChangeFeed, FeedScope
from realtime.events import ChangeType
from sync.filter_engine import FilterEngine
from sync.records import FilterCriteria
from .schemas import DocumentRecord, DocumentStats, DocumentUpdate

logger = logging.getLogger(__name__)

# HTTP status per failed upload rule
_UPLOAD_ERROR_STATUS = {
    "size": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    "type": status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
}


def _not_found(document_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Document {document_id} not found",
    )


# -- visibility ---------------------------------------------------------------

def visible_student_ids(db: Session, user: User) -> Optional[Set[UUID]]:
    """Students whose documents the user may see; None means all of them."""
    if user.role == UserRole.ADMIN.value:
        return None
    if user.role == UserRole.MENTOR.value:
        rows = db.query(Assignment.student_id).filter(Assignment.mentor_id == user.id).all()
        return {row[0] for row in rows}
    return {user.id}


def feed_scope_for(db: Session, user: User, student_id: Optional[UUID] = None) -> FeedScope:
    """Realtime scope matching the user's document visibility.

    The scope is fixed when the subscription opens; assignment changes apply
    to subscriptions opened afterwards.
    """
    student_ids = visible_student_ids(db, user)
    scope = FeedScope(None if student_ids is None else frozenset(student_ids))
    if student_id is not None:
        scope = scope.narrowed(student_id)
    return scope


def hydrated_query(db: Session):
    """Document query with category and submitter joined in."""
    return db.query(Document).options(
        joinedload(Document.category),
        joinedload(Document.student),
    )


def scoped_query(db: Session, user: User, student_id: Optional[UUID] = None):
    query = hydrated_query(db)
    student_ids = visible_student_ids(db, user)
    if student_ids is not None:
        query = query.filter(Document.student_id.in_(student_ids))
    if student_id is not None:
        query = query.filter(Document.student_id == student_id)
    return query


def get_visible_document(db: Session, user: User, document_id: UUID) -> Document:
    """Load a hydrated document the user may see.

    Raises:
        HTTPException 404: If it does not exist or is outside the user's scope
    """
    document = scoped_query(db, user).filter(Document.id == document_id).first()
    if document is None:
        raise _not_found(document_id)
    return document


def to_record(document: Document) -> DocumentRecord:
    return DocumentRecord.model_validate(document)


def list_documents(
    db: Session,
    user: User,
    student_id: Optional[UUID] = None,
    criteria: Optional[FilterCriteria] = None,
) -> List[DocumentRecord]:
    """Visible documents, newest first, filtered like the client-side view."""
    documents = (
        scoped_query(db, user, student_id)
        .order_by(Document.created_at.desc(), Document.id)
        .all()
    )
    records = [to_record(document) for document in documents]
    if criteria is None:
        return records
    return FilterEngine.apply(records, criteria)


def document_stats(db: Session, user: User, student_id: Optional[UUID] = None) -> DocumentStats:
    """Counts of visible documents by status."""
    query = db.query(Document.status, func.count(Document.id))
    student_ids = visible_student_ids(db, user)
    if student_ids is not None:
        query = query.filter(Document.student_id.in_(student_ids))
    if student_id is not None:
        query = query.filter(Document.student_id == student_id)

    counts = {DocumentStatus(row[0]).value: row[1] for row in query.group_by(Document.status).all()}
    return DocumentStats(
        total=sum(counts.values()),
        pending=counts.get("pending", 0),
        approved=counts.get("approved", 0),
        rejected=counts.get("rejected", 0),
    )


def publish_change(feed: ChangeFeed, event: ChangeType, document: Document) -> None:
    """Publish a committed change. Delete events carry no record."""
    feed.publish(
        event,
        document_id=document.id,
        student_id=document.student_id,
        record=None if event is ChangeType.DELETE else document.to_change_payload(),
    )


def _require_category(db: Session, category_id: Optional[UUID]) -> Optional[Category]:
    if category_id is None:
        return None
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Category {category_id} does not exist",
        )
    return category


# -- mutations ----------------------------------------------------------------

async def submit_document(
    db: Session,
    storage: ObjectStoragePort,
    feed: ChangeFeed,
    student: User,
    request: Request,
    content: bytes,
    filename: str,
    mime_type: str,
    category_id: Optional[UUID] = None,
    description: Optional[str] = None,
) -> DocumentRecord:
    """Validate, store and record a new submission.

    Raises:
        HTTPException 400: Invalid filename, description or category
        HTTPException 413: File larger than the upload limit
        HTTPException 415: Not a PDF, JPEG or PNG
        HTTPException 500: Storage failure
    """
    mime_label = mime_type if is_supported_mime_type(mime_type) else "other"
    try:
        description = validate_upload(filename, mime_type, len(content), description)
    except UploadValidationError as e:
        documents_uploaded_total.labels(mime_type=mime_label, status="rejected").inc()
        raise HTTPException(
            status_code=_UPLOAD_ERROR_STATUS.get(e.reason, status.HTTP_400_BAD_REQUEST),
            detail=str(e),
        )

    _require_category(db, category_id)

    try:
        stored = await storage.store_file(
            file=BytesIO(content),
            owner_id=student.id,
            filename=filename,
            mime_type=mime_type,
        )
    except StorageError as e:
        documents_uploaded_total.labels(mime_type=mime_label, status="error").inc()
        logger.error(f"Storage error during upload: {e}", extra={"user_id": student.id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store file",
        )

    document = Document(
        student_id=student.id,
        category_id=category_id,
        file_name=sanitize_filename(filename),
        file_path=stored.storage_key,
        mime_type=mime_type,
        size_bytes=stored.size_bytes,
        sha256=stored.sha256,
        status=DocumentStatus.PENDING,
        description=description,
    )

    try:
        db.add(document)
        db.flush()
        log_from_request(
            db=db,
            request=request,
            action="DOCUMENT_UPLOADED",
            actor_id=student.id,
            entity_type="document",
            entity_id=document.id,
            metadata={
                "file_name": document.file_name,
                "size_bytes": stored.size_bytes,
                "mime_type": mime_type,
            },
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        # Do not leave an unreferenced object behind
        await storage.delete_file(stored.storage_key)
        documents_uploaded_total.labels(mime_type=mime_label, status="error").inc()
        raise

    documents_uploaded_total.labels(mime_type=mime_label, status="success").inc()
    logger.info(
        f"Document uploaded: storage_key={stored.storage_key}, size={stored.size_bytes}",
        extra={"document_id": document.id, "student_id": student.id},
    )

    document = get_visible_document(db, student, document.id)
    publish_change(feed, ChangeType.INSERT, document)
    return to_record(document)


def update_document(
    db: Session,
    feed: ChangeFeed,
    student: User,
    document_id: UUID,
    data: DocumentUpdate,
    request: Request,
) -> DocumentRecord:
    """Student edit of their own pending submission.

    Raises:
        HTTPException 404: Not the student's document
        HTTPException 409: Already reviewed
    """
    document = get_visible_document(db, student, document_id)
    if document.student_id != student.id:
        raise _not_found(document_id)

    if is_reviewed(DocumentStatus(document.status)):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Reviewed documents can no longer be edited",
        )

    changes = {}
    if "description" in data.model_fields_set:
        description = (data.description or "").strip() or None
        if description != document.description:
            changes["description"] = {"old": document.description, "new": description}
            document.description = description

    if "category_id" in data.model_fields_set and data.category_id != document.category_id:
        _require_category(db, data.category_id)
        changes["category_id"] = {
            "old": str(document.category_id) if document.category_id else None,
            "new": str(data.category_id) if data.category_id else None,
        }
        document.category_id = data.category_id

    if not changes:
        return to_record(document)

    document.updated_at = datetime.now(timezone.utc)
    log_from_request(
        db=db,
        request=request,
        action="DOCUMENT_UPDATED",
        actor_id=student.id,
        entity_type="document",
        entity_id=document.id,
        metadata=changes,
    )
    db.commit()

    document = get_visible_document(db, student, document_id)
    publish_change(feed, ChangeType.UPDATE, document)
    return to_record(document)


def review_document(
    db: Session,
    feed: ChangeFeed,
    reviewer: User,
    document_id: UUID,
    action: str,
    feedback: Optional[str],
    request: Request,
) -> DocumentRecord:
    """Approve or reject a pending document.

    Raises:
        HTTPException 400: Reject without feedback, or feedback too long
        HTTPException 404: Document outside the reviewer's scope
        HTTPException 409: Document is not pending
    """
    try:
        decision = validate_review(action, feedback)
    except ReviewValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    document = get_visible_document(db, reviewer, document_id)

    current = DocumentStatus(document.status)
    if not can_transition(current, decision.status):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Document has already been reviewed (status: {current.value})",
        )

    # Conditional write: a concurrent review that committed first leaves no pending row
    now = datetime.now(timezone.utc)
    result = db.execute(
        update(Document)
        .where(Document.id == document.id, Document.status == DocumentStatus.PENDING)
        .values(
            status=decision.status,
            feedback=decision.feedback,
            reviewed_by=reviewer.id,
            reviewed_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Document has already been reviewed",
        )

    log_from_request(
        db=db,
        request=request,
        action="DOCUMENT_REVIEWED",
        actor_id=reviewer.id,
        entity_type="document",
        entity_id=document.id,
        metadata={
            "status": decision.status.value,
            "has_feedback": decision.feedback is not None,
        },
    )
    db.commit()

    documents_reviewed_total.labels(decision=decision.status.value, reviewer_role=reviewer.role).inc()
    logger.info(
        f"Document {decision.status.value} by {reviewer.role}",
        extra={"document_id": document.id, "user_id": reviewer.id},
    )

    document = get_visible_document(db, reviewer, document_id)
    publish_change(feed, ChangeType.UPDATE, document)
    return to_record(document)


async def delete_document(
    db: Session,
    storage: ObjectStoragePort,
    feed: ChangeFeed,
    admin: User,
    document_id: UUID,
    request: Request,
) -> None:
    """Remove a document and its file.

    Raises:
        HTTPException 404: Unknown document
        HTTPException 500: Storage failure (nothing is deleted)
    """
    document = get_visible_document(db, admin, document_id)

    try:
        await storage.delete_file(document.file_path)
    except StorageError as e:
        logger.error(f"Storage error during delete: {e}", extra={"document_id": document_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete file",
        )

    log_from_request(
        db=db,
        request=request,
        action="DOCUMENT_DELETED",
        actor_id=admin.id,
        entity_type="document",
        entity_id=document.id,
        metadata={"file_name": document.file_name, "student_id": str(document.student_id)},
    )
    student_id = document.student_id
    db.delete(document)
    db.commit()

    documents_deleted_total.inc()
    feed.publish(ChangeType.DELETE, document_id=document_id, student_id=student_id)
