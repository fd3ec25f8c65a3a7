"""Pick the revision a history-based rollback should return to."""

import json
from typing import Any, Iterable, List, Optional, Union

from rollout_pilot.deployment.models import RevisionEntry, RevisionStatus
from rollout_pilot.utils.errors import NoRollbackTargetError
from rollout_pilot.utils.logging import get_logger

logger = get_logger(__name__)

# Statuses of a revision that once ran successfully
ROLLBACK_ELIGIBLE = frozenset({RevisionStatus.SUPERSEDED, RevisionStatus.DEPLOYED})


def current_deployed(entries: Iterable[RevisionEntry]) -> Optional[RevisionEntry]:
    """The ``deployed`` entry with the highest sequence number, if any."""
    deployed = [e for e in entries if e.status == RevisionStatus.DEPLOYED]
    if not deployed:
        return None
    return max(deployed, key=lambda e: e.sequence_number)


def select_rollback_target(entries: Iterable[RevisionEntry]) -> RevisionEntry:
    """Choose the previous good revision.

    Candidates are every revision older than the current deployed one (all
    revisions when nothing is deployed). Among them the newest superseded or
    deployed revision wins; a failed or pending revision is only chosen when
    no candidate ever ran successfully.

    Args:
        entries: Revision history in any order

    Returns:
        The revision to roll back to

    Raises:
        NoRollbackTargetError: If there is no candidate at all
    """
    entries = list(entries)
    current = current_deployed(entries)

    if current is None:
        candidates = entries
    else:
        candidates = [e for e in entries if e.sequence_number < current.sequence_number]

    preferred = [e for e in candidates if e.status in ROLLBACK_ELIGIBLE]
    pool = preferred or candidates
    if not pool:
        raise NoRollbackTargetError(
            f"Could not determine a previous revision to roll back to "
            f"(history={len(entries)}, current={current.sequence_number if current else 'none'})"
        )

    target = max(pool, key=lambda e: e.sequence_number)
    logger.debug(
        f"Revision selection: current={current.sequence_number if current else None} "
        f"candidates={[e.sequence_number for e in candidates]} "
        f"preferred={[e.sequence_number for e in preferred]} target={target.sequence_number}"
    )
    return target


def parse_helm_history(raw: Union[str, List[Any]], release: str = '', namespace: str = '') -> List[RevisionEntry]:
    """Turn ``helm history -o json`` output into revision entries.

    Rows without a numeric revision are skipped.

    Args:
        raw: JSON text or already-decoded list
        release: Release name, for error messages
        namespace: Namespace, for error messages

    Returns:
        Revision entries in input order

    Raises:
        NoRollbackTargetError: If the history is not a non-empty list
    """
    parsed = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(parsed, list) or not parsed:
        raise NoRollbackTargetError(
            f"Unable to read helm history for release='{release}' namespace='{namespace}'"
        )

    entries = []
    for row in parsed:
        if not isinstance(row, dict) or row.get('revision') is None:
            continue
        try:
            number = int(row['revision'])
        except (TypeError, ValueError):
            logger.warning(f"Skipping history row with non-numeric revision: {row.get('revision')!r}")
            continue
        entries.append(RevisionEntry(
            sequence_number=number,
            status=RevisionStatus.parse(row.get('status')),
            timestamp=row.get('updated'),
            description=row.get('description')
        ))
    return entries
