import pytest
from unittest.mock import AsyncMock

from pymongo import DESCENDING

from marketplace_matching.models.schemas import Candidate, MatchingSnapshot
from marketplace_matching.services.snapshot_store import SnapshotStore
from marketplace_matching.utils.exceptions import DatabaseError, SnapshotLookupError
from tests.mocks import make_collection, make_cursor, snapshot_doc


class TestSnapshotStore:
    """Latest-snapshot lookups distinguish 'none yet' from 'lookup failed'"""

    @pytest.mark.asyncio
    async def test_latest_snapshot_sorted_by_created_at(self):
        coll = make_collection()
        cursor = make_cursor([snapshot_doc()])
        coll.find.return_value = cursor

        snapshot = await SnapshotStore(coll).get_latest_snapshot("req-1")

        coll.find.assert_called_once_with({"request_id": "req-1"})
        cursor.sort.assert_called_once_with("created_at", DESCENDING)
        cursor.limit.assert_called_once_with(1)
        assert snapshot.snapshot_id == "snap-1"

    @pytest.mark.asyncio
    async def test_candidates_come_back_descending(self):
        coll = make_collection([snapshot_doc(scores={"u1": 0.9, "u2": 0.4, "u3": 0.7})])

        snapshot = await SnapshotStore(coll).get_latest_snapshot("req-1")

        assert [c.score for c in snapshot.candidates] == [0.9, 0.7, 0.4]

    @pytest.mark.asyncio
    async def test_no_snapshot_returns_none(self):
        coll = make_collection([])

        assert await SnapshotStore(coll).get_latest_snapshot("req-1") is None

    @pytest.mark.asyncio
    async def test_lookup_failure_raises(self):
        coll = make_collection()
        coll.find.return_value = make_cursor(error=RuntimeError("server selection timeout"))

        with pytest.raises(SnapshotLookupError) as exc_info:
            await SnapshotStore(coll).get_latest_snapshot("req-1")
        assert exc_info.value.details["request_id"] == "req-1"

    @pytest.mark.asyncio
    async def test_save_snapshot(self):
        coll = make_collection()
        snapshot = MatchingSnapshot(
            snapshot_id="snap-2",
            request_id="req-1",
            candidates=[Candidate(user_id="u1", score=0.8)],
        )

        await SnapshotStore(coll).save_snapshot(snapshot)

        stored = coll.insert_one.call_args.args[0]
        assert stored["snapshot_id"] == "snap-2"
        assert stored["candidates"][0]["user_id"] == "u1"

    @pytest.mark.asyncio
    async def test_save_failure_raises_database_error(self):
        coll = make_collection()
        coll.insert_one = AsyncMock(side_effect=RuntimeError("not primary"))

        with pytest.raises(DatabaseError):
            await SnapshotStore(coll).save_snapshot(MatchingSnapshot(snapshot_id="s", request_id="r"))

    @pytest.mark.asyncio
    async def test_list_snapshots_respects_limit(self):
        coll = make_collection()
        cursor = make_cursor([snapshot_doc(snapshot_id="s2"), snapshot_doc(snapshot_id="s1")])
        coll.find.return_value = cursor

        snapshots = await SnapshotStore(coll).list_snapshots("req-1", limit=2)

        cursor.limit.assert_called_once_with(2)
        assert [s.snapshot_id for s in snapshots] == ["s2", "s1"]
