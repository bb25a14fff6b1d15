# pscore/models/score.py

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional
from enum import Enum

class CamelModel(BaseModel):
    # Persisted JSON keeps the camelCase field names (runHash, isVerified, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

class CohortStanding(CamelModel):
    cohort: str
    standing: str
    reason: str

class RubricScore(CamelModel):
    category: str
    score: float
    max_score: float

class ActionStep(CamelModel):
    title: str
    points: List[str]

class ProductivityReport(CamelModel):
    """The report exactly as the model returns it, before a run hash is attached."""
    utilization_score: float = Field(ge=0, le=100)
    percentile_estimates: str
    inputs_observed: List[str]
    high_leverage_behaviors: List[str]
    missed_leverage: List[str]
    cohort_comparison: List[CohortStanding]
    what_moves_you: List[ActionStep]
    minimal_rubric: List[RubricScore]
    call_to_action: str

class ProductivityScore(ProductivityReport):
    run_hash: str = Field(..., pattern="^[0-9a-f]{40}$")

class LeaderboardEntry(CamelModel):
    run_hash: str
    username: str = ""
    score: float
    is_verified: bool = False

class ScoreHistoryEntry(CamelModel):
    score_data: ProductivityScore
    timestamp: str  # ISO string for easy storage

class Leaderboards(CamelModel):
    verified: List[LeaderboardEntry] = Field(default_factory=list)
    unverified: List[LeaderboardEntry] = Field(default_factory=list)

class GenerationStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

class SessionState(CamelModel):
    profile_id: str
    username: str
    username_error: Optional[str] = None
    status: GenerationStatus
    is_loading: bool
    is_refreshing: bool
    timer: int
    estimated_time: int
    history: List[ScoreHistoryEntry]
    selected_history_index: Optional[int] = None
    current_score: Optional[ScoreHistoryEntry] = None
    user_entry: Optional[LeaderboardEntry] = None
    has_posted: bool
    verified_leaderboard: List[LeaderboardEntry]
    unverified_leaderboard: List[LeaderboardEntry]
    error: Optional[str] = None
    can_generate: bool
    can_post_unverified: bool
    can_get_verified: bool
