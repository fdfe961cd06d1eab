"""
Matching Snapshot Store - ranked results of scoring runs, newest wins
"""
from typing import List, Optional

from pymongo import DESCENDING

from marketplace_matching.models.schemas import MatchingSnapshot
from marketplace_matching.services.db import to_dict
from marketplace_matching.services.scoring import sort_candidates
from marketplace_matching.utils.exceptions import DatabaseError, SnapshotLookupError
from marketplace_matching.utils.logging_config import get_logger, PerformanceMonitor

logger = get_logger(__name__)


def _to_snapshot(doc) -> MatchingSnapshot:
    snapshot = MatchingSnapshot(**to_dict(doc))
    # stored order is not trusted
    snapshot.candidates = sort_candidates(snapshot.candidates)
    return snapshot


class SnapshotStore:
    def __init__(self, collection):
        self.collection = collection

    async def save_snapshot(self, snapshot: MatchingSnapshot) -> MatchingSnapshot:
        try:
            await self.collection.insert_one(snapshot.dict())
        except Exception as e:
            raise DatabaseError(
                f"Failed to store snapshot for request {snapshot.request_id}",
                operation="save_snapshot",
                collection="matching_snapshots",
                cause=e,
            )
        logger.info(
            f"Stored snapshot {snapshot.snapshot_id} for request {snapshot.request_id} "
            f"with {len(snapshot.candidates)} candidates"
        )
        return snapshot

    async def get_latest_snapshot(self, request_id: str) -> Optional[MatchingSnapshot]:
        """Most recent snapshot by created_at, or None when none was computed yet.

        Raises SnapshotLookupError when the lookup itself fails.
        """
        with PerformanceMonitor(f"get_latest_snapshot[{request_id}]", logger, threshold_ms=500):
            try:
                cursor = self.collection.find({"request_id": request_id}).sort("created_at", DESCENDING).limit(1)
                docs = await cursor.to_list(length=1)
                return _to_snapshot(docs[0]) if docs else None
            except Exception as e:
                raise SnapshotLookupError(
                    f"Failed to look up snapshot for request {request_id}",
                    request_id=request_id,
                    cause=e,
                )

    async def list_snapshots(self, request_id: str, limit: int = 20) -> List[MatchingSnapshot]:
        try:
            cursor = self.collection.find({"request_id": request_id}).sort("created_at", DESCENDING).limit(limit)
            docs = await cursor.to_list(length=limit)
        except Exception as e:
            raise SnapshotLookupError(
                f"Failed to list snapshots for request {request_id}",
                request_id=request_id,
                cause=e,
            )
        return [_to_snapshot(doc) for doc in docs]
