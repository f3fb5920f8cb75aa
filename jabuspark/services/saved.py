import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from jabuspark.models.orm import SavedItem, SavedKind

logger = logging.getLogger(__name__)


def toggle_saved(db: Session, user_id: str, kind: SavedKind, item_id: str) -> bool:
    """Flip the saved state of an item and return the new state.

    ``item_id`` is not checked against the table it points at.
    """
    kind = SavedKind(kind)
    row = db.scalar(
        select(SavedItem)
        .where(SavedItem.user_id == user_id, SavedItem.kind == kind.value, SavedItem.item_id == item_id)
        .limit(1)
    )
    if row is not None:
        db.delete(row)
        saved = False
    else:
        db.add(SavedItem(user_id=user_id, kind=kind.value, item_id=item_id))
        saved = True
    db.commit()
    logger.info(f"User {user_id} {'saved' if saved else 'unsaved'} {kind.value}/{item_id}")
    return saved
