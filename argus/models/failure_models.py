"""ARGUS — Failure Tracking Models.

`FailedEntity` is the durable row for one unit of work that failed to create
on Meta. The parameters needed to re-attempt it live in a tagged payload
stored as JSON, one shape per failure kind.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field as PydanticField, TypeAdapter
from sqlmodel import SQLModel, Field, Index


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityType(str, Enum):
    CAMPAIGN = "campaign"
    ADSET = "adset"
    AD = "ad"


class FailureStatus(str, Enum):
    FAILED = "failed"
    RETRYING = "retrying"
    RECOVERED = "recovered"
    RESOLVED = "resolved"  # dismissed by the user
    PERMANENT_FAILURE = "permanent_failure"


# ─────────────────────────────────────────────
# TAGGED PAYLOADS
# ─────────────────────────────────────────────


class CampaignCreationPayload(BaseModel):
    """Parameters of a campaign that failed to create."""

    type: Literal["campaign_creation"] = "campaign_creation"
    params: Dict[str, Any] = {}


class AdSetCreationPayload(BaseModel):
    """Ad set parameters, plus the dependent ad to create once it exists."""

    type: Literal["adset_creation"] = "adset_creation"
    params: Dict[str, Any] = {}
    ad_params: Optional[Dict[str, Any]] = None


class AdCreationPayload(BaseModel):
    """Ad parameters; the parent ad set id is on the record itself."""

    type: Literal["ad_creation"] = "ad_creation"
    params: Dict[str, Any] = {}


class FieldMismatch(BaseModel):
    """One field where Meta holds a different value than requested."""

    field: str
    expected: Any = None
    actual: Any = None
    kind: str = "value_mismatch"  # "value_mismatch" | "array_mismatch"


class VerificationMismatchPayload(BaseModel):
    """Fields that verification found wrong and could not correct."""

    type: Literal["verification_mismatch"] = "verification_mismatch"
    entity_id: str
    mismatches: List[FieldMismatch] = []
    auto_correct_attempted: bool = False


FailurePayload = Annotated[
    Union[
        CampaignCreationPayload,
        AdSetCreationPayload,
        AdCreationPayload,
        VerificationMismatchPayload,
    ],
    PydanticField(discriminator="type"),
]

_payload_adapter: TypeAdapter = TypeAdapter(FailurePayload)


def dump_payload(payload: BaseModel) -> str:
    return payload.model_dump_json()


def parse_payload(raw: str) -> FailurePayload:
    """Parse the stored JSON back into its payload variant."""
    return _payload_adapter.validate_json(raw)


# ─────────────────────────────────────────────
# DATABASE MODEL
# ─────────────────────────────────────────────


class FailedEntity(SQLModel, table=True):
    """A campaign, ad set or ad that failed to create (or verify) on Meta."""

    __tablename__ = "failed_entities"
    __table_args__ = (
        Index("ix_failed_entities_user_campaign", "user_id", "campaign_id"),
        Index("ix_failed_entities_user_status", "user_id", "status"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, description="Owning user")
    campaign_id: Optional[str] = Field(default=None, index=True, description="Meta campaign ID")
    campaign_name: str = Field(default="", description="Denormalized for display")
    strategy_type: Optional[str] = Field(
        default=None, description="Creation workflow that produced the failure"
    )

    entity_type: str = Field(index=True, description="campaign | adset | ad")
    adset_id: Optional[str] = Field(default=None, description="Meta ad set ID (parent, for ads)")
    adset_name: Optional[str] = None
    ad_id: Optional[str] = None
    ad_name: Optional[str] = None

    status: str = Field(default=FailureStatus.FAILED.value, index=True)
    retry_count: int = Field(default=0)
    last_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None

    failure_reason: str = Field(default="", description="Technical failure reason")
    user_friendly_reason: str = Field(default="")
    error_code: Optional[str] = None
    payload_json: str = Field(default="{}", description="Tagged payload as JSON")

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    recovered_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.adset_name or self.ad_name or self.campaign_name

    def payload(self) -> FailurePayload:
        return parse_payload(self.payload_json)


class FailureRead(BaseModel):
    """API view of a FailedEntity with its payload decoded."""

    id: int
    user_id: str
    campaign_id: Optional[str] = None
    campaign_name: str = ""
    strategy_type: Optional[str] = None
    entity_type: str
    adset_id: Optional[str] = None
    adset_name: Optional[str] = None
    ad_id: Optional[str] = None
    ad_name: Optional[str] = None
    status: str
    retry_count: int
    can_retry: bool
    last_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    failure_reason: str = ""
    user_friendly_reason: str = ""
    error_code: Optional[str] = None
    payload: Dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime
    recovered_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: FailedEntity, max_attempts: int = 3) -> "FailureRead":
        data = record.model_dump(exclude={"payload_json"})
        return cls(
            **data,
            payload=parse_payload(record.payload_json).model_dump(),
            can_retry=(
                record.status == FailureStatus.FAILED.value
                and record.retry_count < max_attempts
            ),
        )


class FailureContext(BaseModel):
    """Everything `record_failure` needs besides the error itself."""

    user_id: str
    entity_type: EntityType
    payload: FailurePayload
    campaign_id: Optional[str] = None
    campaign_name: str = ""
    strategy_type: Optional[str] = None
    adset_id: Optional[str] = None
    adset_name: Optional[str] = None
    ad_id: Optional[str] = None
    ad_name: Optional[str] = None


class FailureStats(BaseModel):
    """Aggregate counts for a user (optionally scoped to one campaign)."""

    total: int = 0
    by_status: Dict[str, int] = {}
    by_entity_type: Dict[str, int] = {}
    by_strategy: Dict[str, int] = {}
    recovery_rate: Union[str, int] = 0  # "25.00" style percentage, 0 when empty


class RetryResult(BaseModel):
    """Outcome of a retry that reached the executor."""

    success: bool
    failure_id: int
    status: str
    retry_count: int
    result: Optional[Dict[str, Any]] = None
    warning: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None  # "executor_error" | "claim_lost"
    can_retry_again: bool = False
    permanent_failure: bool = False
    cascaded_failure_id: Optional[int] = None
