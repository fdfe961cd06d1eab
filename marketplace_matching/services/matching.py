import os
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from dotenv import load_dotenv

from marketplace_matching.models.matching_config import MatchingConfiguration
from marketplace_matching.models.schemas import (
    ComputeMatchingResult, FreelancerProfile, MatchingRequest, MatchingSnapshot
)
from marketplace_matching.services.config_store import ConfigurationStore
from marketplace_matching.services.db import to_dict
from marketplace_matching.services.scoring import Scorer, WeightedSumScorer
from marketplace_matching.services.snapshot_store import SnapshotStore
from marketplace_matching.utils.exceptions import MatchingServiceError, ScoringError
from marketplace_matching.utils.logging_config import get_logger, PerformanceMonitor
from marketplace_matching.utils.utils import as_naive_utc

load_dotenv()
SNAPSHOT_REUSE_HOURS = float(os.getenv("SNAPSHOT_REUSE_HOURS", "24"))

logger = get_logger(__name__)

ScorerFactory = Callable[[MatchingConfiguration], Scorer]


class MatchingService:
    """Scores a request against all freelancers and persists the shortlist as a snapshot"""

    def __init__(
        self,
        config_store: ConfigurationStore,
        snapshot_store: SnapshotStore,
        requests_coll,
        freelancers_coll,
        scorer_factory: ScorerFactory = WeightedSumScorer,
        reuse_hours: float = SNAPSHOT_REUSE_HOURS,
    ):
        self.config_store = config_store
        self.snapshot_store = snapshot_store
        self.requests_coll = requests_coll
        self.freelancers_coll = freelancers_coll
        self.scorer_factory = scorer_factory
        self.reuse_hours = reuse_hours

    async def _load_request(self, request_id: str) -> MatchingRequest:
        doc = await self.requests_coll.find_one({"request_id": request_id})
        if not doc:
            raise ScoringError(f"Request {request_id} not found", request_id=request_id)
        return MatchingRequest(**to_dict(doc))

    async def _load_profiles(self) -> List[FreelancerProfile]:
        docs = await self.freelancers_coll.find({}).to_list(length=None)
        return [FreelancerProfile(**to_dict(doc)) for doc in docs]

    async def _reusable_snapshot(self, request_id: str) -> Optional[MatchingSnapshot]:
        latest = await self.snapshot_store.get_latest_snapshot(request_id)
        if latest is None or not latest.candidates:
            return None
        if as_naive_utc(latest.created_at) < datetime.utcnow() - timedelta(hours=self.reuse_hours):
            return None
        return latest

    async def compute_matching(self, request_id: str, force_recompute: bool = False) -> ComputeMatchingResult:
        """Run (or reuse) a scoring run for request_id.

        Any failure raises ScoringError and no snapshot is written.
        """
        logger.info(f"Computing matches for request {request_id} (force_recompute={force_recompute})")
        try:
            if not force_recompute:
                existing = await self._reusable_snapshot(request_id)
                if existing is not None:
                    logger.info(f"Reusing snapshot {existing.snapshot_id} for request {request_id}")
                    return ComputeMatchingResult(
                        request_id=request_id,
                        message=f"Using cached matching results from less than {self.reuse_hours:g}h ago",
                        snapshot_id=existing.snapshot_id,
                        candidate_count=len(existing.candidates),
                        reused=True,
                    )

            request = await self._load_request(request_id)
            config = await self.config_store.load_configuration()
            profiles = await self._load_profiles()
            logger.info(f"Found {len(profiles)} freelancers to evaluate")

            scorer = self.scorer_factory(config)
            with PerformanceMonitor(f"score_request[{request_id}]", logger):
                ranked = scorer.rank(request, profiles)

            shortlist_size = config.effective_shortlist_size(request.is_sensitive)
            snapshot = MatchingSnapshot(
                snapshot_id=str(uuid.uuid4()),
                request_id=request_id,
                candidates=ranked[:shortlist_size],
                weights_used=dict(config.weights),
                shortlist_size=shortlist_size,
                algorithm_version=scorer.algorithm_version,
            )
            await self.snapshot_store.save_snapshot(snapshot)
        except ScoringError:
            raise
        except MatchingServiceError as e:
            raise ScoringError(e.message, request_id=request_id, cause=e)
        except Exception as e:
            logger.error(f"Error computing matches for request {request_id}: {e}", exc_info=True)
            raise ScoringError(
                f"Failed to compute matching results: {e}",
                request_id=request_id,
                cause=e,
            )

        return ComputeMatchingResult(
            request_id=request_id,
            message=f"Successfully matched {len(snapshot.candidates)} candidates",
            snapshot_id=snapshot.snapshot_id,
            candidate_count=len(snapshot.candidates),
        )
