"""Activity logging service.

This service provides a centralized interface for creating immutable activity
entries. Every new Group or Post version is recorded through this service.

Actions:
- CREATE: first version of a group or post
- EDIT: any later version
"""

from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from ..models.activity import Activity
from ..models.base import ActivityAction


def log_activity(
    db: Session,
    action: ActivityAction,
    user_id: Optional[int],
    group_id: Optional[int] = None,
    post_id: Optional[int] = None,
    target_uuid: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Activity:
    """Create an activity entry.

    Args:
        db: Database session
        action: CREATE or EDIT
        user_id: User who performed the action
        group_id: Logical id of the group concerned
        post_id: Logical id of the post concerned (None for group activity)
        target_uuid: uuid of the version row that was written
        metadata: Additional context as JSON (e.g., {"version": 2})

    Returns:
        Activity: The created entry

    Example:
        log_activity(
            db=db,
            action=ActivityAction.EDIT,
            user_id=user.id,
            group_id=post.group_id,
            post_id=post.post_id,
            target_uuid=post.uuid,
            metadata={"version": post.version},
        )
    """
    entry = Activity(
        action=ActivityAction(action).value,
        user_id=user_id,
        group_id=group_id,
        post_id=post_id,
        target_uuid=target_uuid,
        metadata_json=metadata,
    )

    db.add(entry)
    db.flush()  # Get ID without committing transaction

    return entry


def list_activities(
    db: Session,
    group_id: Optional[int] = None,
    post_id: Optional[int] = None,
) -> List[Activity]:
    """Return activity entries for a group or a post, oldest first."""
    query = db.query(Activity)
    if group_id is not None:
        query = query.filter(Activity.group_id == group_id)
    if post_id is not None:
        query = query.filter(Activity.post_id == post_id)
    return query.order_by(Activity.id.asc()).all()
