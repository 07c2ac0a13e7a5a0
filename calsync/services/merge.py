"""
Merge and dedup engine.

Applies one source's ChangeSet to the unified store:

1. Upserts are keyed by (source, native_id). A stored event is replaced only
   when the incoming backend `last_modified` is not older than the stored one
   (last-writer-wins by backend timestamp, never by fetch time).
2. Deletions only ever touch events of the change set's own source.
3. Snapshot change sets (`full_window` set) also remove stored events of the
   source inside the window that the snapshot no longer contains.

Everything runs in one store transaction: the change set applies completely
or not at all, so a cursor is never advanced over a partial merge.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from calsync.integrations.base import ChangeSet, UnifiedEvent
from calsync.integrations.exceptions import MalformedResponseError, MergeFailureError
from calsync.services.event_store import UnifiedEventStore

logger = logging.getLogger(__name__)


@dataclass
class MergeStats:
    """Outcome of applying one change set."""

    created: int = 0
    updated: int = 0
    unchanged: int = 0
    stale: int = 0
    deleted: int = 0

    @property
    def total_changes(self) -> int:
        return self.created + self.updated + self.deleted

    def summary(self) -> str:
        parts = []
        if self.created:
            parts.append(f"{self.created} created")
        if self.updated:
            parts.append(f"{self.updated} updated")
        if self.deleted:
            parts.append(f"{self.deleted} deleted")
        if self.unchanged:
            parts.append(f"{self.unchanged} unchanged")
        if self.stale:
            parts.append(f"{self.stale} stale")
        return ", ".join(parts) if parts else "No changes"


def _collapse_upserts(upserts) -> dict[str, UnifiedEvent]:
    """Keep one upsert per native id, the newest by backend timestamp."""
    latest: dict[str, UnifiedEvent] = {}
    for event in upserts:
        current = latest.get(event.native_id)
        if current is None or event.last_modified >= current.last_modified:
            latest[event.native_id] = event
    return latest


class MergeEngine:
    """Reconciles fetched change sets against the unified store."""

    def __init__(self, store: UnifiedEventStore):
        self._store = store

    def apply(self, change_set: ChangeSet) -> MergeStats:
        """
        Apply a change set in a single transaction.

        Applying the same change set twice leaves the store as applying it
        once did.

        Args:
            change_set: Changes fetched from one source

        Returns:
            MergeStats describing what changed

        Raises:
            MalformedResponseError: If an upsert belongs to another source
            MergeFailureError: If the store write failed (nothing was applied)
        """
        source = change_set.source

        foreign = [e for e in change_set.upserts if e.source != source]
        if foreign:
            raise MalformedResponseError(
                f"Change set for {source} contains {len(foreign)} events of other sources"
            )

        upserts = _collapse_upserts(change_set.upserts)
        stats = MergeStats()

        try:
            with self._store.transaction() as tx:
                for native_id, event in upserts.items():
                    version = tx.get_version(source, native_id)
                    if version is None:
                        tx.upsert(event)
                        stats.created += 1
                        continue

                    stored_modified, stored_hash = version
                    if event.last_modified < stored_modified:
                        logger.debug(
                            f"Ignoring stale {source} upsert for {native_id} "
                            f"({event.last_modified} < {stored_modified})"
                        )
                        stats.stale += 1
                    elif stored_hash == event.content_hash():
                        stats.unchanged += 1
                        if event.last_modified > stored_modified:
                            tx.upsert(event)
                    else:
                        stats.updated += 1
                        tx.upsert(event)

                # An id both upserted and deleted in one change set stays upserted
                for native_id in change_set.deletions:
                    if native_id in upserts:
                        continue
                    if tx.delete(source, native_id):
                        stats.deleted += 1

                if change_set.full_window is not None:
                    missing = tx.native_ids_in_window(source, change_set.full_window) - set(upserts)
                    for native_id in missing:
                        if tx.delete(source, native_id):
                            stats.deleted += 1
        except SQLAlchemyError as e:
            logger.error(f"Merge for {source} failed and was rolled back: {e}")
            raise MergeFailureError(
                f"Failed to apply {source} changes to the local store: {e}",
                original_error=e,
            ) from e

        logger.info(f"Merged {source}: {stats.summary()}")
        return stats
