"""
Usage guard — which metadata list rows are still referenced by lessons learned.

A task or resource that disappears from a re-imported file is only
hard-deleted when its metadata list row is unused. Used rows are archived
in place by the reconciliation engine instead.
"""

import logging
from typing import Iterable

from app.core.exceptions import LoadError, StoreError
from app.models.lessons_learned import LessonsLearnedMetadata
from app.services.batch_writer import DEFAULT_CHUNK_SIZE, chunk_list
from app.services.helpers.structured_store import StructuredStore, eq, in_
from app.services.import_scope import ImportScope

logger = logging.getLogger(__name__)

USAGE_TABLE = LessonsLearnedMetadata.__tablename__
USAGE_COLUMN = "lessons_learned_metadata_list_id"


def find_used_metadata_ids(
    store: StructuredStore,
    candidate_ids: Iterable,
    scope: ImportScope,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> set[str]:
    """Return the subset of ``candidate_ids`` (as strings) referenced in the usage table.

    Read-only, batched through ``in(...)`` chunks and scoped to the
    organization/project.

    Raises:
        LoadError: a usage read failed.
    """
    ids = [str(i) for i in candidate_ids if i is not None]
    used: set[str] = set()
    for chunk in chunk_list(ids, chunk_size):
        try:
            rows = store.select(
                USAGE_TABLE,
                [
                    eq("organization_id", scope.organization_id),
                    eq("project_id", scope.project_id),
                    in_(USAGE_COLUMN, [int(i) if i.isdigit() else i for i in chunk]),
                ],
                columns=[USAGE_COLUMN],
            )
        except StoreError as exc:
            raise LoadError(
                f"Failed checking metadata usage: {exc.message}",
                details={"table": USAGE_TABLE},
            ) from exc
        for row in rows:
            if row.get(USAGE_COLUMN) is not None:
                used.add(str(row[USAGE_COLUMN]))
    if used:
        logger.debug("%d of %d metadata list rows are referenced", len(used), len(ids))
    return used
