"""
Matching Configuration Models
"""
from pydantic import BaseModel, Field, validator
from typing import Dict, List, Optional, Any
from datetime import datetime


RECOGNIZED_FACTORS = (
    "skills",
    "domain",
    "outcomes",
    "availability",
    "locale",
    "price",
    "vetting",
    "history",
)

WEIGHT_SUM_TOLERANCE = 1e-9

DEFAULT_WEIGHTS: Dict[str, float] = {
    "skills": 0.25,
    "domain": 0.15,
    "outcomes": 0.20,
    "availability": 0.15,
    "locale": 0.05,
    "price": 0.10,
    "vetting": 0.07,
    "history": 0.03,
}

# field name -> persisted admin_settings key
SETTING_KEYS: Dict[str, str] = {
    "weights": "matching_weights",
    "shortlist_size_default": "shortlist_size_default",
    "invite_response_sla_hours": "invite_response_sla_hours",
    "max_quotes_per_request": "max_quotes_per_request",
    "min_quotes_before_presenting": "min_quotes_before_presenting",
    "sensitive_single_provider_only": "sensitive_single_provider_only",
    "conflict_window_days": "conflict_window_days",
}

VERSION_KEY = "matching_config_version"


class MatchingConfiguration(BaseModel):
    """Process-wide matching configuration"""
    weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_WEIGHTS), description="Factor weights, expected to sum to 1.0")
    shortlist_size_default: int = Field(default=3, ge=1, description="Candidates kept in a snapshot")
    invite_response_sla_hours: int = Field(default=24, ge=1, description="Hours a candidate has to answer an invitation")
    max_quotes_per_request: int = Field(default=5, ge=1, description="Maximum quotes collected per request")
    min_quotes_before_presenting: int = Field(default=2, ge=1, description="Quotes required before presenting to the client")
    sensitive_single_provider_only: bool = Field(default=True, description="Shortlist a single provider for sensitive requests")
    conflict_window_days: int = Field(default=30, ge=1, description="Lookback window for recent conflicts")
    version: int = Field(default=0, ge=0, description="Optimistic-concurrency token")

    @validator('weights')
    def validate_weights(cls, v):
        for factor, weight in v.items():
            if factor not in RECOGNIZED_FACTORS:
                raise ValueError(f'Unknown matching factor "{factor}"')
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f'Weight for factor "{factor}" must be between 0.0 and 1.0')
        return v

    def weight_total(self) -> float:
        return float(sum(self.weights.values()))

    def check_weights(self) -> "WeightCheck":
        return check_weights(self.weights)

    def clamp_quote_thresholds(self) -> "MatchingConfiguration":
        """Return a copy with min_quotes_before_presenting clamped to max_quotes_per_request"""
        if self.min_quotes_before_presenting <= self.max_quotes_per_request:
            return self
        return self.copy(update={"min_quotes_before_presenting": self.max_quotes_per_request})

    def effective_shortlist_size(self, is_sensitive: bool = False) -> int:
        if is_sensitive and self.sensitive_single_provider_only:
            return 1
        return self.shortlist_size_default

    def to_settings(self) -> Dict[str, Any]:
        """Flatten into persisted setting_key -> setting_value pairs"""
        data = self.dict()
        return {key: data[field] for field, key in SETTING_KEYS.items()}


class WeightCheck(BaseModel):
    """Outcome of the weights-sum check shown to operators"""
    total: float
    is_valid: bool
    warning: Optional[str] = None
    missing_factors: List[str] = Field(default_factory=list)


def check_weights(weights: Dict[str, float]) -> WeightCheck:
    """Report (never correct) a weights map that does not sum to 1.0"""
    total = float(sum(weights.values()))
    missing = [f for f in RECOGNIZED_FACTORS if f not in weights]
    if abs(total - 1.0) <= WEIGHT_SUM_TOLERANCE:
        return WeightCheck(total=total, is_valid=True, missing_factors=missing)
    return WeightCheck(
        total=total,
        is_valid=False,
        warning=f"Weights must sum to 1.0. Current total: {round(total, 10)}",
        missing_factors=missing,
    )


class MatchingConfigurationResponse(BaseModel):
    """Configuration plus the operator-facing weight check"""
    configuration: MatchingConfiguration
    weight_check: WeightCheck
    loaded_at: datetime = Field(default_factory=datetime.utcnow)


class WeightsPayload(BaseModel):
    weights: Dict[str, float]
