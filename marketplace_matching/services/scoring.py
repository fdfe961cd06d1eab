"""
Candidate scoring strategies.

A scorer is built with the MatchingConfiguration it must use and ranks
freelancer profiles against one request. WeightedSumScorer is the default:
each factor is normalized to 0..1 and the composite is the dot product with
the configured weights. Other models can be plugged in by subclassing Scorer.
"""
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import numpy as np

from marketplace_matching.models.matching_config import MatchingConfiguration, RECOGNIZED_FACTORS
from marketplace_matching.models.schemas import (
    Candidate, CandidateProfileView, FreelancerProfile, MatchingRequest, OutcomeHistory
)
from marketplace_matching.utils.logging_config import get_logger
from marketplace_matching.utils.utils import as_naive_utc

logger = get_logger(__name__)

COMMON_SKILLS = [
    'react', 'vue', 'angular', 'javascript', 'typescript', 'python', 'java',
    'ui/ux', 'design', 'marketing', 'seo', 'content', 'copywriting',
    'project management', 'agile', 'scrum', 'analytics', 'data',
    'automation', 'crm', 'hubspot', 'salesforce', 'stripe', 'payment'
]

INDUSTRIES = [
    'fintech', 'healthcare', 'education', 'ecommerce', 'saas',
    'consulting', 'agency', 'startup', 'enterprise', 'nonprofit'
]

NEUTRAL = 0.5
# pounds; converted to pence like any parsed figure
UNBOUNDED_BUDGET_POUNDS = 999999


def extract_skills(text: str) -> List[str]:
    lowered = text.lower()
    return [s for s in COMMON_SKILLS if s in lowered]


def extract_industries(text: str) -> List[str]:
    lowered = text.lower()
    return [i for i in INDUSTRIES if i in lowered]


def parse_budget_range(budget_range: str) -> Tuple[int, int]:
    """'£2,000 - £5,000' -> (200000, 500000) in pence; unbounded when no numbers"""
    numbers = [int(m.replace(",", "")) * 100 for m in re.findall(r"\d[\d,]*", budget_range or "")]
    if not numbers:
        return 0, UNBOUNDED_BUDGET_POUNDS * 100
    return min(numbers), max(numbers)


def skills_score(freelancer_skills: List[str], request_skills: List[str]) -> float:
    if not request_skills:
        return NEUTRAL
    owned = [fs.lower() for fs in freelancer_skills]
    matches = [s for s in request_skills if any(s.lower() in fs for fs in owned)]
    return min(len(matches) / len(request_skills), 1.0)


def domain_score(industries: List[str], tools: List[str], request_industries: List[str]) -> float:
    score = 0.0
    if request_industries:
        owned = [i.lower() for i in industries]
        hits = [ri for ri in request_industries if any(ri.lower() in i for i in owned)]
        score += (len(hits) / len(request_industries)) * 0.7
    # tool breadth bonus
    score += min(len(tools) / 10, 0.3)
    return min(score, 1.0)


def outcomes_score(history: Optional[OutcomeHistory]) -> float:
    if history is None:
        return NEUTRAL
    parts = []
    if history.csat_score is not None:
        parts.append(history.csat_score / 5)
    if history.on_time_rate is not None:
        parts.append(history.on_time_rate)
    if history.pass_at_qa_rate is not None:
        parts.append(history.pass_at_qa_rate)
    if history.revision_rate is not None:
        parts.append(1 - history.revision_rate)
    if history.dispute_rate is not None:
        parts.append(1 - history.dispute_rate)
    if not parts:
        return NEUTRAL
    return float(np.clip(np.mean(parts), 0.0, 1.0))


def availability_score(weekly_hours: float) -> float:
    if 20 <= weekly_hours <= 40:
        return 1.0
    if weekly_hours < 10:
        return 0.2
    if weekly_hours > 50:
        return 0.6
    return 0.8


def locale_score(locales: List[str], request_locales: List[str]) -> float:
    if request_locales:
        wanted = {loc.lower() for loc in request_locales}
        return 1.0 if wanted & {loc.lower() for loc in locales} else 0.3
    return 0.8 if locales else NEUTRAL


def price_score(min_price: int, max_price: int, budget: Tuple[int, int]) -> float:
    if not min_price or not max_price:
        return NEUTRAL
    overlap_min = max(min_price, budget[0])
    overlap_max = min(max_price, budget[1])
    if overlap_min > overlap_max:
        return 0.1
    narrowest = min(max_price - min_price, budget[1] - budget[0])
    if narrowest <= 0:
        return 1.0
    return min((overlap_max - overlap_min) / narrowest, 1.0)


def vetting_score(certifications: List[str]) -> float:
    return min(len(certifications) / 3, 1.0)


def history_score(completed_projects: int) -> float:
    if completed_projects <= 0:
        return NEUTRAL
    return min(completed_projects / 10, 1.0)


def profile_view(profile: FreelancerProfile) -> CandidateProfileView:
    return CandidateProfileView(
        full_name=profile.full_name,
        email=profile.email,
        skills=profile.skills,
        price_range=f"£{profile.price_band_min / 100:g}-{profile.price_band_max / 100:g}",
        availability=f"{profile.availability_weekly_hours:g}h/week",
    )


def sort_candidates(candidates: List[Candidate]) -> List[Candidate]:
    """Descending score; equal scores ordered by user_id"""
    return sorted(candidates, key=lambda c: (-c.score, c.user_id))


class Scorer(ABC):
    """Ranks freelancer profiles for a request under a fixed configuration"""

    algorithm_version = "custom"

    def __init__(self, config: MatchingConfiguration):
        self.config = config

    @abstractmethod
    def rank(
        self,
        request: MatchingRequest,
        profiles: List[FreelancerProfile],
        now: Optional[datetime] = None
    ) -> List[Candidate]:
        """Return every eligible candidate, best first"""


class WeightedSumScorer(Scorer):
    algorithm_version = "weighted-sum-v1"

    def __init__(self, config: MatchingConfiguration):
        super().__init__(config)
        self.weight_vector = np.array(
            [config.weights.get(f, 0.0) for f in RECOGNIZED_FACTORS], dtype=np.float64
        )

    def factor_scores(
        self,
        request: MatchingRequest,
        profile: FreelancerProfile,
        request_skills: List[str],
        request_industries: List[str],
        budget: Tuple[int, int]
    ) -> Dict[str, float]:
        return {
            "skills": skills_score(profile.skills, request_skills),
            "domain": domain_score(profile.industries, profile.tools, request_industries),
            "outcomes": outcomes_score(profile.outcome_history),
            "availability": availability_score(profile.availability_weekly_hours),
            "locale": locale_score(profile.locales, request.locales),
            "price": price_score(profile.price_band_min, profile.price_band_max, budget),
            "vetting": vetting_score(profile.certifications),
            "history": history_score(profile.completed_projects),
        }

    def is_conflicted(self, profile: FreelancerProfile, now: datetime) -> bool:
        if profile.last_conflict_at is None:
            return False
        return as_naive_utc(profile.last_conflict_at) >= now - timedelta(days=self.config.conflict_window_days)

    def rank(self, request, profiles, now=None):
        now = now or datetime.utcnow()
        text = f"{request.title} {request.custom_requirements}"
        request_skills = request.skills or extract_skills(text)
        request_industries = request.industries or extract_industries(text)
        budget = parse_budget_range(request.budget_range)

        candidates = []
        excluded = 0
        for profile in profiles:
            if self.is_conflicted(profile, now):
                excluded += 1
                continue
            breakdown = self.factor_scores(request, profile, request_skills, request_industries, budget)
            factors = np.array([breakdown[f] for f in RECOGNIZED_FACTORS], dtype=np.float64)
            total = float(np.clip(self.weight_vector @ factors, 0.0, 1.0))
            candidates.append(Candidate(
                user_id=profile.user_id,
                score=round(total, 4),
                breakdown={f: round(v, 4) for f, v in breakdown.items()},
                profile=profile_view(profile),
            ))

        if excluded:
            logger.info(f"Excluded {excluded} candidates with conflicts in the last {self.config.conflict_window_days} days")
        return sort_candidates(candidates)
