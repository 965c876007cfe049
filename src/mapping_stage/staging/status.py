"""Status transitions for staged entities.

- Update: ``added`` stays ``added`` (the server has never seen it);
  anything else becomes ``updated``.
- Delete: ``added`` records are purged outright; all others become a
  ``deleted`` tombstone so the commit can tell the server to remove them.
"""

from mapping_stage.store.models import EntityStatus


def status_after_update(current: EntityStatus) -> EntityStatus:
    """Status a record takes after any edit.

    Example:
        >>> status_after_update(EntityStatus.UNCHANGED)
        <EntityStatus.UPDATED: 'updated'>
        >>> status_after_update(EntityStatus.ADDED)
        <EntityStatus.ADDED: 'added'>
    """
    if current == EntityStatus.ADDED:
        return EntityStatus.ADDED
    return EntityStatus.UPDATED


def is_purged_on_delete(current: EntityStatus) -> bool:
    """Whether deleting a record removes it physically instead of tombstoning."""
    return current == EntityStatus.ADDED


def has_pending_change(status: EntityStatus) -> bool:
    return status != EntityStatus.UNCHANGED
