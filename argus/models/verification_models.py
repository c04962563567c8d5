"""ARGUS — Verification Request / Result Models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from argus.models.failure_models import FieldMismatch


# ─────────────────────────────────────────────
# REQUEST: what the user asked Meta to create
# ─────────────────────────────────────────────


class TargetingSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    age_min: Optional[int] = None
    age_max: Optional[int] = None


class CreativeSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    primary_text: Optional[str] = None
    headline: Optional[str] = None
    description: Optional[str] = None
    call_to_action: Optional[str] = None
    link: Optional[str] = None


class EntityRequest(BaseModel):
    """Requested values for one entity (or shared defaults at top level)."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    status: Optional[str] = None

    # Campaign
    campaign_name: Optional[str] = None
    objective: Optional[str] = None
    special_ad_categories: Optional[List[str]] = None

    # Budget: "campaign" level budgets live on the campaign, else on ad sets
    budget_level: Optional[str] = None  # "campaign" | "adset"
    budget_type: Optional[str] = None  # "daily" | "lifetime"
    daily_budget: Optional[Any] = None
    lifetime_budget: Optional[Any] = None
    bid_strategy: Optional[str] = None

    # Ad set
    adset_name: Optional[str] = None
    optimization_goal: Optional[str] = None
    billing_event: Optional[str] = None
    targeting: Optional[TargetingSpec] = None

    # Ad
    ad_name: Optional[str] = None
    creative: Optional[CreativeSpec] = None


class OriginalRequest(EntityRequest):
    """Top-level request; `adsets[i]` / `ads[i]` override it per entity."""

    adsets: List[EntityRequest] = []
    ads: List[EntityRequest] = []

    def for_adset(self, index: int) -> EntityRequest:
        return self._merged(self.adsets, index)

    def for_ad(self, index: int) -> EntityRequest:
        return self._merged(self.ads, index)

    def _merged(self, overrides: List[EntityRequest], index: int) -> EntityRequest:
        base = self.model_dump(exclude={"adsets", "ads"})
        if index < len(overrides):
            base.update(overrides[index].model_dump(exclude_none=True))
        return EntityRequest(**base)


class CreatedEntities(BaseModel):
    """Ids Meta returned for what was actually created."""

    campaign_id: Optional[str] = None
    adset_ids: List[str] = []
    ad_ids: List[str] = []


# ─────────────────────────────────────────────
# RESULT
# ─────────────────────────────────────────────


class CorrectionTally(BaseModel):
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0

    def add(self, other: "CorrectionTally") -> None:
        self.attempted += other.attempted
        self.succeeded += other.succeeded
        self.failed += other.failed


class MismatchItem(BaseModel):
    """All mismatched fields of one entity."""

    entity_type: str
    entity_id: str
    entity_name: str = ""
    mismatches: List[FieldMismatch] = []
    status: str = "mismatched"  # "mismatched" | "corrected"
    failure_reason: str = ""
    uncorrected: List[FieldMismatch] = []


class FetchFailure(BaseModel):
    """An entity that could not be fetched and was therefore not compared."""

    entity_type: str
    entity_id: str
    error: str


class VerificationResult(BaseModel):
    passed: bool = True
    total_mismatches: int = 0
    corrections: CorrectionTally = Field(default_factory=CorrectionTally)
    items: List[MismatchItem] = []
    fetch_failures: List[FetchFailure] = []
    failure_ids: List[int] = []
    entities_checked: int = 0
    summary: str = ""

    def counts_by_type(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for item in self.items:
            counts[item.entity_type] = counts.get(item.entity_type, 0) + len(item.mismatches)
        return counts
