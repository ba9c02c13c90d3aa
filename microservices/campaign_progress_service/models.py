"""
Campaign Progress Service Data Models

Canonical data structures for the progress engine: campaign definitions as
read from persistence, linked transactions, and the derived snapshots the
engine publishes.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================

class CampaignKind(str, Enum):
    """How a campaign measures progress"""
    SIMPLE = "simple"
    COMPOSITE = "composite"


class TargetType(str, Enum):
    """What a target counts"""
    VALUE = "value"        # sum of transaction values
    QUANTITY = "quantity"  # number of transactions


class ContractType(str, Enum):
    """Contract type of a transaction"""
    NEW = "new"
    RENEWAL = "renewal"


class ContractTypeFilter(str, Enum):
    """Contract types a criterion accepts"""
    NEW = "new"
    RENEWAL = "renewal"
    EITHER = "either"


class CampaignStatus(str, Enum):
    """Stored campaign status"""
    ACTIVE = "active"
    COMPLETED = "completed"
    PENDING = "pending"      # awaiting broker acceptance
    CANCELLED = "cancelled"  # expired without reaching the target


class ChangeTopic(str, Enum):
    """Independent change sources the coordinator listens to"""
    CAMPAIGN_DEFINITIONS = "campaign-definitions"
    LINKS = "links"
    TRANSACTIONS = "transactions"


class CoordinatorState(str, Enum):
    """Per-campaign recomputation state"""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    COMPUTING = "computing"


class ProgressOutcome(str, Enum):
    """Outcome of an on-demand progress request"""
    OK = "ok"
    NOT_FOUND = "not_found"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"


# =============================================================================
# ALIAS NORMALISATION
# =============================================================================

ANY_POLICY_TYPE = "any"

CATEGORY_ALIASES: Dict[str, str] = {
    "any": ANY_POLICY_TYPE,
    "geral": ANY_POLICY_TYPE,
    "auto": "Seguro Auto",
    "seguro auto": "Seguro Auto",
    "residencial": "Seguro Residencial",
    "seguro residencial": "Seguro Residencial",
}

CONTRACT_TYPE_ALIASES: Dict[str, str] = {
    "new": "new",
    "novo": "new",
    "renewal": "renewal",
    "renovacao_bradesco": "renewal",
    "renovação bradesco": "renewal",
    "either": "either",
    "ambos": "either",
}

TARGET_TYPE_ALIASES: Dict[str, str] = {
    "value": "value",
    "valor": "value",
    "quantity": "quantity",
    "apolices": "quantity",
    "apólices": "quantity",
}


def normalize_category(value: Optional[str]) -> str:
    """Map a category/policy type spelling to its canonical form"""
    if value is None:
        return ""
    raw = str(value).strip()
    return CATEGORY_ALIASES.get(raw.lower(), raw)


def normalize_contract_type(value: Any) -> Any:
    if value is None or isinstance(value, Enum):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    return CONTRACT_TYPE_ALIASES.get(raw.lower(), raw)


def normalize_target_type(value: Any) -> Any:
    if value is None or isinstance(value, Enum):
        return value
    raw = str(value).strip()
    return TARGET_TYPE_ALIASES.get(raw.lower(), raw)


# =============================================================================
# BASE MODELS
# =============================================================================

class BaseContract(BaseModel):
    """Base model for all contracts"""

    model_config = {
        "from_attributes": True,
    }


class FrozenContract(BaseContract):
    """Immutable value object"""

    model_config = {
        "from_attributes": True,
        "frozen": True,
    }


# =============================================================================
# CAMPAIGN DEFINITION
# =============================================================================

class Criterion(FrozenContract):
    """One AND-combined clause of a composite campaign"""
    policy_type: str = Field(default=ANY_POLICY_TYPE, description="Category filter or 'any'")
    target_type: TargetType
    target_value: Decimal
    min_value_per_policy: Optional[Decimal] = Field(None, description="Per-transaction value floor")
    contract_type: ContractTypeFilter = ContractTypeFilter.EITHER
    order_index: int = 0

    @field_validator("policy_type", mode="before")
    @classmethod
    def normalize_policy_type(cls, v):
        return normalize_category(v) or ANY_POLICY_TYPE

    @field_validator("target_type", mode="before")
    @classmethod
    def normalize_target(cls, v):
        return normalize_target_type(v)

    @field_validator("contract_type", mode="before")
    @classmethod
    def normalize_contract(cls, v):
        return normalize_contract_type(v) or ContractTypeFilter.EITHER

    @property
    def accepts_any_policy_type(self) -> bool:
        return self.policy_type == ANY_POLICY_TYPE


class Campaign(BaseContract):
    """A sales incentive with a completion target"""
    campaign_id: str
    user_id: Optional[str] = Field(None, description="Broker the campaign belongs to")
    title: Optional[str] = None
    kind: CampaignKind = CampaignKind.SIMPLE
    target_type: TargetType = TargetType.VALUE
    target: Decimal = Decimal("0")
    criteria: Optional[List[Criterion]] = None
    criteria_error: Optional[str] = Field(None, description="Set when stored criteria failed to parse")
    status: CampaignStatus = CampaignStatus.ACTIVE
    is_active: bool = True
    accepted_at: Optional[datetime] = None
    end_date: Optional[datetime] = None

    # Stored derived state
    current_value: Decimal = Decimal("0")
    progress_percentage: Decimal = Decimal("0")
    achieved_at: Optional[datetime] = None
    achieved_value: Optional[Decimal] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("target_type", mode="before")
    @classmethod
    def normalize_target(cls, v):
        return normalize_target_type(v) or TargetType.VALUE

    @property
    def is_composite(self) -> bool:
        return self.kind == CampaignKind.COMPOSITE

    @property
    def has_malformed_criteria(self) -> bool:
        return self.criteria_error is not None


# =============================================================================
# TRANSACTIONS AND LINKS
# =============================================================================

class Transaction(FrozenContract):
    """An insurance policy counted toward campaigns"""
    transaction_id: str
    category: str = ""
    value: Decimal = Decimal("0")
    contract_type: Optional[ContractType] = None
    registered_at: datetime
    policy_number: Optional[str] = None
    user_id: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category_field(cls, v):
        return normalize_category(v)

    @field_validator("contract_type", mode="before")
    @classmethod
    def normalize_contract(cls, v):
        normalized = normalize_contract_type(v)
        if normalized in (ContractType.NEW.value, ContractType.RENEWAL.value) or isinstance(normalized, Enum):
            return normalized
        return None

    @field_validator("value", mode="before")
    @classmethod
    def default_value(cls, v):
        return Decimal("0") if v is None else v


class Link(FrozenContract):
    """Binds a transaction to a campaign"""
    campaign_id: str
    transaction_id: str
    is_active: bool = True
    linked_at: Optional[datetime] = None


class LinkedTransaction(FrozenContract):
    """A link with its resolved transaction (None when it could not be resolved)"""
    link: Link
    transaction: Optional[Transaction] = None


# =============================================================================
# DERIVED STATE
# =============================================================================

class CriterionProgress(FrozenContract):
    """Progress of a single criterion"""
    policy_type: str
    target_type: TargetType
    target_value: Decimal
    current_value: Decimal = Decimal("0")
    percentage: Decimal = Decimal("0")
    is_completed: bool = False
    matching_transactions: int = 0
    order_index: int = 0


class CompositeResult(FrozenContract):
    """Campaign-level result of combining criteria"""
    percentage: Decimal = Decimal("0")
    is_completed: bool = False
    current_value: Decimal = Decimal("0")


class ProgressSnapshot(FrozenContract):
    """Complete derived progress state for a campaign at one instant"""
    campaign_id: str
    kind: CampaignKind
    current_value: Decimal
    percentage: Decimal
    is_completed: bool
    criteria_breakdown: Tuple[CriterionProgress, ...] = ()
    total_transactions: int = 0
    fallback_used: bool = False
    computed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    generation: int = 0


class ProgressResult(BaseContract):
    """Explicit result of an on-demand progress request"""
    outcome: ProgressOutcome
    snapshot: Optional[ProgressSnapshot] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == ProgressOutcome.OK


class ChangeEvent(FrozenContract):
    """A change notification on one of the three topics"""
    topic: ChangeTopic
    action: str
    campaign_id: Optional[str] = None
    transaction_id: Optional[str] = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# RECONCILIATION
# =============================================================================

class CampaignProgressUpdate(BaseContract):
    """Derived state to write back onto a stored campaign"""
    current_value: Decimal
    progress_percentage: Decimal
    status: Optional[CampaignStatus] = Field(None, description="New status, None keeps the stored one")
    achieved_at: Optional[datetime] = None
    achieved_value: Optional[Decimal] = None
    clear_achievement: bool = False

    @property
    def changes_status(self) -> bool:
        return self.status is not None


class ReconciliationResult(BaseContract):
    """Outcome of validating (and possibly correcting) one campaign"""
    campaign_id: str
    outcome: ProgressOutcome
    drifted: bool = False
    corrected: bool = False
    issues: List[str] = Field(default_factory=list)
    previous_status: Optional[CampaignStatus] = None
    new_status: Optional[CampaignStatus] = None
    snapshot: Optional[ProgressSnapshot] = None
    error: Optional[str] = None


class ReconciliationReport(BaseContract):
    """Summary of a reconciliation pass"""
    validated: int = 0
    corrected: int = 0
    errors: List[str] = Field(default_factory=list)
    results: List[ReconciliationResult] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None


class RecalculationReport(BaseContract):
    """Summary of a batch re-derivation"""
    total: int = 0
    computed: int = 0
    not_found: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


# =============================================================================
# API MODELS
# =============================================================================

class RecalculateRequest(BaseModel):
    """Batch recalculation filter"""
    user_id: Optional[str] = None


class ReconcileRequest(BaseModel):
    """Batch reconciliation filter"""
    user_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    port: int
    version: str
    dependencies: Dict[str, str] = Field(default_factory=dict)


class ReadinessResponse(BaseModel):
    """Readiness check response"""
    ready: bool
    checks: Dict[str, bool] = Field(default_factory=dict)
    details: Dict[str, str] = Field(default_factory=dict)


class LivenessResponse(BaseModel):
    """Liveness check response"""
    alive: bool
    uptime_seconds: float


class ErrorResponse(BaseModel):
    """Standard error response"""
    detail: str
    error_code: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


__all__ = [
    # Enums
    "CampaignKind",
    "TargetType",
    "ContractType",
    "ContractTypeFilter",
    "CampaignStatus",
    "ChangeTopic",
    "CoordinatorState",
    "ProgressOutcome",
    # Alias normalisation
    "ANY_POLICY_TYPE",
    "normalize_category",
    "normalize_contract_type",
    "normalize_target_type",
    # Core models
    "Criterion",
    "Campaign",
    "Transaction",
    "Link",
    "LinkedTransaction",
    "CriterionProgress",
    "CompositeResult",
    "ProgressSnapshot",
    "ProgressResult",
    "ChangeEvent",
    # Reconciliation
    "CampaignProgressUpdate",
    "ReconciliationResult",
    "ReconciliationReport",
    "RecalculationReport",
    # API
    "RecalculateRequest",
    "ReconcileRequest",
    "HealthResponse",
    "ReadinessResponse",
    "LivenessResponse",
    "ErrorResponse",
]
