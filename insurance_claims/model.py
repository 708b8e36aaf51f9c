from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional, Dict
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from insurance_claims.currency import Currency, format_money
from insurance_claims.errors import InvalidCoverageRule


class CodeType(str, Enum):
    procedure = "PROCEDURE"
    diagnosis = "DIAGNOSIS"
    pharmaceutical = "PHARMACEUTICAL"


# spellings used by older CSV exports
CODE_TYPE_ALIASES = {
    "CPT": CodeType.procedure,
    "ICD10": CodeType.diagnosis,
    "ICD-10": CodeType.diagnosis,
}


def parse_code_type(value) -> CodeType:
    if isinstance(value, CodeType):
        return value
    if not isinstance(value, str):
        raise ValueError(f"codeType must be a string, got {value!r}")
    cleaned = value.strip().upper()
    if cleaned in CODE_TYPE_ALIASES:
        return CODE_TYPE_ALIASES[cleaned]
    try:
        return CodeType(cleaned)
    except ValueError:
        raise ValueError(f"Unknown codeType {value!r}") from None


class ImportRow(BaseModel):
    """One already-parsed bulk import row. Field names are a public contract."""

    codeType: CodeType
    code: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1)
    category: Optional[str] = Field(None, max_length=100)
    amount: Optional[Decimal] = Field(None, ge=0)

    @field_validator("codeType", mode="before")
    def normalize_code_type(cls, v):
        return parse_code_type(v)

    @field_validator("code", "description", mode="before")
    def strip_strings(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("category", mode="before")
    def blank_category(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("amount", mode="before")
    def blank_amount(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        if isinstance(v, float):
            return Decimal(str(v))
        return v


class ImportReport(BaseModel):
    processed: int = 0
    imported: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
    upload_id: Optional[int] = None


class MedicalCodeEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    country_id: str
    code_type: CodeType
    code: str
    description: str
    category: Optional[str] = None
    standard_amount: Optional[Decimal] = None
    source: Optional[str] = None
    is_active: bool = True
    effective_from: Optional[datetime] = None
    superseded_at: Optional[datetime] = None


class CodeEntryInput(BaseModel):
    code_type: CodeType
    code: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1)
    category: Optional[str] = None
    standard_amount: Optional[Decimal] = Field(None, ge=0)

    @field_validator("code_type", mode="before")
    def normalize_code_type(cls, v):
        return parse_code_type(v)

    @field_validator("code", "description", mode="before")
    def strip_strings(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class CodeCorrection(BaseModel):
    description: Optional[str] = None
    category: Optional[str] = None
    standard_amount: Optional[Decimal] = Field(None, ge=0)


class CodeSystemLabels(BaseModel):
    country_id: str
    procedure: str
    diagnosis: str
    pharmaceutical: str


class CopayStrategy(str, Enum):
    fixed = "fixed"
    percentage = "percentage"


class CoverageRule(BaseModel):
    """How the billed amount of one service is split for one insurer.

    Exactly one of ``copay_amount`` and ``copay_percentage`` is set.
    """

    model_config = ConfigDict(from_attributes=True)

    service_id: str = Field(..., min_length=1)
    insurer_id: str = Field(..., min_length=1)
    copay_amount: Optional[Decimal] = Field(None, ge=0)
    copay_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    max_coverage_amount: Optional[Decimal] = Field(None, ge=0)
    pre_auth_required: bool = False
    deductible_applies: bool = False
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None

    @field_validator("service_id", "insurer_id", mode="before")
    def strip_ids(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def check_single_strategy(self):
        try:
            self.copay_strategy()
        except InvalidCoverageRule as exc:
            raise ValueError(str(exc)) from None
        return self

    @model_validator(mode="after")
    def check_dates(self):
        if self.effective_date and self.expiration_date and self.expiration_date < self.effective_date:
            raise ValueError(
                f"Coverage rule {self.service_id}/{self.insurer_id} expires on {self.expiration_date}, "
                f"before it takes effect on {self.effective_date}"
            )
        return self

    def in_force(self, on: date) -> bool:
        """Open-ended on either side when a date is not set; both ends inclusive."""
        if self.effective_date is not None and on < self.effective_date:
            return False
        if self.expiration_date is not None and on > self.expiration_date:
            return False
        return True

    def copay_strategy(self) -> CopayStrategy:
        has_amount = self.copay_amount is not None
        has_percentage = self.copay_percentage is not None
        if has_amount and has_percentage:
            raise InvalidCoverageRule(
                f"Coverage rule {self.service_id}/{self.insurer_id} sets both copay_amount and copay_percentage"
            )
        if not has_amount and not has_percentage:
            raise InvalidCoverageRule(
                f"Coverage rule {self.service_id}/{self.insurer_id} sets neither copay_amount nor copay_percentage"
            )
        return CopayStrategy.fixed if has_amount else CopayStrategy.percentage


class CoverageRuleUpdate(BaseModel):
    """Partial edit. Clearing one strategy and setting the other is allowed."""

    copay_amount: Optional[Decimal] = Field(None, ge=0)
    copay_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    max_coverage_amount: Optional[Decimal] = Field(None, ge=0)
    pre_auth_required: Optional[bool] = None
    deductible_applies: Optional[bool] = None
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None


class CoverageRuleInput(CoverageRuleUpdate):
    """Unvalidated request body; turned into a CoverageRule by build_coverage_rule."""

    service_id: str = Field(..., min_length=1)
    insurer_id: str = Field(..., min_length=1)


class AdjudicationResult(BaseModel):
    gross_amount: Decimal
    insurer_amount: Decimal
    patient_amount: Decimal
    currency: Currency
    copay_strategy: CopayStrategy
    pre_auth_required: bool = False
    deductible_applies: bool = False
    max_coverage_capped: bool = False

    def display(self) -> Dict[str, str]:
        return {
            "gross_amount": format_money(self.gross_amount, self.currency),
            "insurer_amount": format_money(self.insurer_amount, self.currency),
            "patient_amount": format_money(self.patient_amount, self.currency),
        }


class AdjudicationRequest(BaseModel):
    service_id: str
    insurer_id: str
    # parsed by the engine so an unknown code surfaces as UnknownCurrency
    currency: str = Field(..., min_length=1)
    gross_amount: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    quantity: int = Field(1, ge=1)
    country_id: Optional[str] = None
    code_type: Optional[CodeType] = None
    code: Optional[str] = None
    service_date: Optional[date] = Field(None, description="date the service was rendered; defaults to today")

    @field_validator("currency", mode="before")
    def normalize_currency(cls, v):
        if isinstance(v, str):
            return v.upper().strip()
        return v

    @field_validator("code_type", mode="before")
    def normalize_code_type(cls, v):
        if v is None:
            return v
        return parse_code_type(v)


class AdjudicationResponse(BaseModel):
    result: AdjudicationResult
    display: Dict[str, str]


class ClaimStatus(str, Enum):
    submitted = "submitted"
    processing = "processing"
    approved = "approved"
    denied = "denied"
    paid = "paid"


class Claim(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    claim_number: str
    patient_id: str
    service_ref: str
    insurer_id: str
    currency: Currency
    gross_amount: Decimal
    insurer_amount: Decimal
    patient_amount: Decimal
    approved_amount: Optional[Decimal] = None
    paid_amount: Optional[Decimal] = None
    pre_auth_required: bool
    deductible_applies: bool
    max_coverage_capped: bool
    status: ClaimStatus
    submitted_by: str
    submitted_at: datetime
    processed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    denial_reason: Optional[str] = None
    supersedes_claim_id: Optional[int] = None


class ClaimSubmission(AdjudicationRequest):
    patient_id: str = Field(..., min_length=1)
    service_ref: str = Field(..., min_length=1, description="service rendered or medication dispensed")


class SupersedeRequest(AdjudicationRequest):
    pass


class TransitionRequest(BaseModel):
    to_status: ClaimStatus
    reason: Optional[str] = None
    expected_status: Optional[ClaimStatus] = Field(None, description="status the caller last read")
    amount: Optional[Decimal] = Field(None, description="approved or paid amount; defaults to the full entitlement")

    @field_validator("to_status", "expected_status", mode="before")
    def normalize_status(cls, v):
        if isinstance(v, str):
            return v.lower().strip()
        return v


class ClaimTransitionEvent(BaseModel):
    """Payload handed to the audit collaborator on every status change."""

    model_config = ConfigDict(populate_by_name=True)

    claim_id: int = Field(..., alias="claimId")
    from_status: Optional[ClaimStatus] = Field(None, alias="fromStatus")
    to_status: ClaimStatus = Field(..., alias="toStatus")
    actor: str
    timestamp: datetime


class ClaimTransitionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    claim_id: int
    from_status: Optional[ClaimStatus] = None
    to_status: ClaimStatus
    actor: str
    reason: Optional[str] = None
    occurred_at: datetime
