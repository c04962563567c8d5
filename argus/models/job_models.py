"""ARGUS — Background Job Models."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_JOB_STATUSES = (JobStatus.COMPLETED, JobStatus.ERROR)


class JobProgressRecord(BaseModel):
    """Pollable progress of one asynchronous job (held in memory only)."""

    job_id: str
    user_id: str
    kind: str
    label: str = ""
    status: JobStatus = JobStatus.PENDING
    total_requested: int = 0
    total_created: int = 0
    current_operation: str = ""
    results: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    started_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


# ─────────────────────────────────────────────
# AD DUPLICATION REQUEST
# ─────────────────────────────────────────────


class AdSetSelection(BaseModel):
    adset_id: str
    adset_name: Optional[str] = None
    number_of_copies: int = Field(ge=1, le=6)


class AdVariation(BaseModel):
    """Overrides for one copy; unset fields keep the original ad's value."""

    variation_number: Optional[int] = None
    primary_text: Optional[str] = None
    headline: Optional[str] = None
    description: Optional[str] = None
    display_link: Optional[str] = None
    website_url: Optional[str] = None
    call_to_action: Optional[str] = None
    image_hash: Optional[str] = None
    video_id: Optional[str] = None
    apply_to_remaining: bool = False

    def has_overrides(self) -> bool:
        return bool(
            self.model_dump(
                exclude={"variation_number", "apply_to_remaining"}, exclude_none=True
            )
        )


class AdDuplicationRequest(BaseModel):
    campaign_id: str
    campaign_name: Optional[str] = None
    original_ad_id: str
    duplication_type: str = "quick"  # "quick" | "custom"
    ad_sets: List[AdSetSelection] = Field(min_length=1)
    variations: List[AdVariation] = []

    @property
    def total_requested(self) -> int:
        return sum(a.number_of_copies for a in self.ad_sets)
