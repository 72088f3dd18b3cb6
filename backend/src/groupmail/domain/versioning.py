"""Copy-on-write versioning for Group and Post rows.

Every version transition is an explicit call:

    create_versioned()  allocate a row, then set logical id = row id
    edit()              archive the current version, insert version + 1
    publish()           archive the published version, publish this one

State Flow:
    (new) -> DRAFT -> PUBLISHED -> ARCHIVED
                   \\-> DELETED
    ARCHIVED -> PUBLISHED (re-publish an older version)

New rows are inserted as DRAFT and moved to their target status once the
logical id is assigned, so a half-built row never occupies a PUBLISHED
slot of the partial unique indexes.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..activity.service import log_activity
from ..models.base import ActivityAction, ContentStatus
from ..models.group import Group
from ..models.post import Post

Versioned = Union[Group, Post]

ALLOWED_TRANSITIONS: Dict[Optional[ContentStatus], List[ContentStatus]] = {
    None: [ContentStatus.DRAFT],
    ContentStatus.DRAFT: [
        ContentStatus.PUBLISHED,
        ContentStatus.ARCHIVED,
        ContentStatus.DELETED,
    ],
    ContentStatus.PUBLISHED: [ContentStatus.ARCHIVED, ContentStatus.DELETED],
    ContentStatus.ARCHIVED: [ContentStatus.PUBLISHED, ContentStatus.DELETED],
    ContentStatus.DELETED: [],  # Terminal state
}

# Columns never copied from one version to the next
_NON_COPIED = {"id", "uuid", "version", "status", "created_at", "updated_at", "deleted_at"}


class StateTransitionError(Exception):
    """Raised when an invalid status transition is attempted."""
    pass


@dataclass
class Created:
    """Result of a two-phase creation."""
    entity: Versioned
    logical_id: int


def can_transition(
    from_status: Optional[ContentStatus],
    to_status: ContentStatus,
) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, [])


def validate_transition(
    current_status: Optional[ContentStatus],
    new_status: ContentStatus,
) -> None:
    """Validate that a status transition is allowed.

    Raises:
        StateTransitionError: If transition is not allowed
    """
    if not can_transition(current_status, new_status):
        allowed = [s.value for s in ALLOWED_TRANSITIONS.get(current_status, [])]
        raise StateTransitionError(
            f"Invalid status transition: {current_status} -> {new_status}. "
            f"Allowed: {allowed}"
        )


def _status_of(entity: Versioned) -> Optional[ContentStatus]:
    return ContentStatus(entity.status) if entity.status else None


def _set_status(entity: Versioned, new_status: ContentStatus) -> None:
    validate_transition(_status_of(entity), new_status)
    entity.status = new_status.value


def _logical_column(model: Type[Versioned]):
    return getattr(model, model.LOGICAL_ID)


def _activity_target(entity: Versioned) -> Dict[str, Any]:
    if isinstance(entity, Post):
        return {"group_id": entity.group_id, "post_id": entity.logical_id}
    return {"group_id": entity.logical_id, "post_id": None}


def create_versioned(
    db: Session,
    model: Type[Versioned],
    actor_id: Optional[int],
    status: ContentStatus = ContentStatus.PUBLISHED,
    finalize: Optional[Callable[[Versioned], None]] = None,
    **fields: Any,
) -> Created:
    """Create the first version of a Group or Post.

    Phase one inserts the row to allocate its id; phase two sets the
    logical id to that row id, lets `finalize` derive id-dependent fields
    (e.g. a slug suffix) and moves the row to `status`. Both phases run in
    the caller's transaction. A CREATE activity is appended.

    Args:
        db: Database session
        model: Group or Post
        actor_id: User creating the entity
        status: Target status of the new version (PUBLISHED or DRAFT)
        finalize: Optional callback run once the logical id is known
        **fields: Column values for the new row

    Returns:
        Created: the new row and its logical id
    """
    entity = model(**fields)
    entity.version = 1
    _set_status(entity, ContentStatus.DRAFT)
    db.add(entity)
    db.flush()

    setattr(entity, model.LOGICAL_ID, entity.id)
    if finalize is not None:
        finalize(entity)
    if status != ContentStatus.DRAFT:
        _set_status(entity, status)
    db.flush()

    log_activity(
        db,
        ActivityAction.CREATE,
        user_id=actor_id,
        target_uuid=entity.uuid,
        **_activity_target(entity),
    )
    return Created(entity=entity, logical_id=entity.id)


def latest_version_number(db: Session, model: Type[Versioned], logical_id: int) -> int:
    current = db.query(func.max(model.version)).filter(
        _logical_column(model) == logical_id
    ).scalar()
    return current or 0


def _archive_published(db: Session, model: Type[Versioned], logical_id: int, keep_id=None) -> None:
    published = db.query(model).filter(
        _logical_column(model) == logical_id,
        model.status == ContentStatus.PUBLISHED.value,
    ).all()
    for row in published:
        if row.id != keep_id:
            _set_status(row, ContentStatus.ARCHIVED)
    # Archive must reach the database before another row claims PUBLISHED
    db.flush()


def edit(
    db: Session,
    entity: Versioned,
    changes: Dict[str, Any],
    actor_id: Optional[int],
    status: ContentStatus = ContentStatus.PUBLISHED,
) -> Versioned:
    """Write a new version of `entity` with `changes` applied.

    The logical id is preserved and the version counter incremented. When
    the new version is PUBLISHED, the currently published version is
    archived first; a DRAFT leaves it untouched until publish() is called.
    An EDIT activity is appended.

    Returns:
        The new version row
    """
    model = type(entity)
    logical_id = entity.logical_id

    data = {
        column.key: getattr(entity, column.key)
        for column in model.__table__.columns
        if column.key not in _NON_COPIED
    }
    data.update(changes)
    data[model.LOGICAL_ID] = logical_id

    if status == ContentStatus.PUBLISHED:
        _archive_published(db, model, logical_id)

    new_version = model(**data)
    new_version.version = latest_version_number(db, model, logical_id) + 1
    _set_status(new_version, ContentStatus.DRAFT)
    db.add(new_version)
    db.flush()
    if status != ContentStatus.DRAFT:
        _set_status(new_version, status)
        db.flush()

    log_activity(
        db,
        ActivityAction.EDIT,
        user_id=actor_id,
        target_uuid=new_version.uuid,
        metadata={"version": new_version.version, "status": new_version.status},
        **_activity_target(new_version),
    )
    return new_version


def publish(db: Session, entity: Versioned) -> Versioned:
    """Publish a given version, archiving the one currently published.

    Raises:
        StateTransitionError: If the version cannot be published (e.g.
            DELETED); nothing is archived in that case
    """
    if entity.status == ContentStatus.PUBLISHED.value:
        return entity
    validate_transition(_status_of(entity), ContentStatus.PUBLISHED)
    model = type(entity)
    _archive_published(db, model, entity.logical_id, keep_id=entity.id)
    _set_status(entity, ContentStatus.PUBLISHED)
    db.flush()
    return entity
