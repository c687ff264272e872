"""Document category endpoints.

Every signed-in user can list categories (they populate the upload form);
only admins create, rename or remove them. Removing a category keeps its
documents and clears their category, which is published as an update.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit.service import log_from_request
from auth.dependencies import CurrentAdmin, CurrentUser
from database import get_db
from dependencies import get_change_feed
from documents.service import hydrated_query, publish_change
from models.category import Category
from models.document import Document
from realtime.change_feed import ChangeFeed
from realtime.events import ChangeType
from .schemas import CategoryCreate, CategoryListResponse, CategoryResponse, CategoryUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/categories", tags=["Categories"])


def _get_category(db: Session, category_id: UUID) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Category not found"
        )
    return category


def _name_taken(db: Session, name: str, exclude_id: UUID = None) -> bool:
    query = db.query(Category).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first() is not None


@router.get("", response_model=CategoryListResponse)
def list_categories(current_user: CurrentUser, db: Session = Depends(get_db)):
    """All categories, ordered by name."""
    categories = db.query(Category).order_by(Category.name).all()
    return CategoryListResponse(
        categories=[CategoryResponse.model_validate(c) for c in categories],
        total=len(categories),
    )


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    data: CategoryCreate,
    request: Request,
    admin: CurrentAdmin,
    db: Session = Depends(get_db),
):
    """Create a category. Names are unique (409 otherwise)."""
    if _name_taken(db, data.name):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Category '{data.name}' already exists"
        )

    category = Category(name=data.name, description=data.description)
    try:
        db.add(category)
        db.flush()
        log_from_request(
            db=db,
            request=request,
            action="CATEGORY_CREATED",
            actor_id=admin.id,
            entity_type="category",
            entity_id=category.id,
            metadata={"name": category.name},
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Category '{data.name}' already exists"
        )

    db.refresh(category)
    return category


@router.patch("/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: UUID,
    data: CategoryUpdate,
    request: Request,
    admin: CurrentAdmin,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Rename or re-describe a category.

    A rename changes the joined category of every document in it, so those
    documents are published as updates.
    """
    category = _get_category(db, category_id)
    changes = {}

    if data.name is not None and data.name != category.name:
        if _name_taken(db, data.name, exclude_id=category_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Category '{data.name}' already exists"
            )
        changes["name"] = {"old": category.name, "new": data.name}
        category.name = data.name

    if "description" in data.model_fields_set and data.description != category.description:
        changes["description"] = {"old": category.description, "new": data.description}
        category.description = data.description

    if not changes:
        return category

    log_from_request(
        db=db,
        request=request,
        action="CATEGORY_UPDATED",
        actor_id=admin.id,
        entity_type="category",
        entity_id=category.id,
        metadata=changes,
    )
    db.commit()
    db.refresh(category)

    if "name" in changes:
        for document in hydrated_query(db).filter(Document.category_id == category_id).all():
            publish_change(feed, ChangeType.UPDATE, document)

    return category


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: UUID,
    request: Request,
    admin: CurrentAdmin,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Delete a category; its documents stay, uncategorized."""
    category = _get_category(db, category_id)

    affected_ids = [
        row[0] for row in db.query(Document.id).filter(Document.category_id == category_id).all()
    ]
    if affected_ids:
        db.query(Document).filter(Document.id.in_(affected_ids)).update(
            {Document.category_id: None}, synchronize_session=False
        )

    log_from_request(
        db=db,
        request=request,
        action="CATEGORY_DELETED",
        actor_id=admin.id,
        entity_type="category",
        entity_id=category.id,
        metadata={"name": category.name, "documents_uncategorized": len(affected_ids)},
    )
    db.delete(category)
    db.commit()

    logger.info(f"Category deleted; {len(affected_ids)} document(s) uncategorized")
    if affected_ids:
        for document in hydrated_query(db).filter(Document.id.in_(affected_ids)).all():
            publish_change(feed, ChangeType.UPDATE, document)
