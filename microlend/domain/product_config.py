"""
Loan product configuration boundary.

Products arrive from storage with their fee and penalty rules encoded as JSON
text. They are validated here, once, into typed rules; a rule that cannot be
interpreted raises ProductMisconfigured instead of degrading to a zero fee.
"""

import json
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from microlend.domain.exceptions import ProductMisconfigured
from microlend.domain.models import (
    AccrualBase,
    DailyFeeRule,
    FeeKind,
    FeeRule,
    FixedFee,
    LoanProduct,
    PenaltyFrequency,
    PenaltyKind,
    PenaltyTier,
    PercentageFee,
    ProductStatus,
)

# Spellings used by the admin screens
_ACCRUAL_BASE_ALIASES = {"simple": "principal", "compound": "outstanding"}
_PENALTY_KIND_ALIASES = {
    "percentageOfPrincipal": "percent_of_principal",
    "percentageOfCompound": "percent_of_outstanding",
    "percentageOfOutstanding": "percent_of_outstanding",
}
_FREQUENCY_ALIASES = {"one-time": "one_time", "oneTime": "one_time"}


class FeeRuleSchema(BaseModel):
    """Service fee or daily fee as stored: {"type": ..., "value": ...}"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: FeeKind
    value: Decimal = Field(..., ge=0)
    calculation_base: AccrualBase = Field(AccrualBase.PRINCIPAL, alias="calculationBase")

    @field_validator("value", mode="before")
    @classmethod
    def blank_value(cls, value: Any) -> Any:
        return 0 if value == "" else value

    @field_validator("calculation_base", mode="before")
    @classmethod
    def map_base(cls, value: Any) -> Any:
        return _ACCRUAL_BASE_ALIASES.get(value, value)

    def to_rule(self) -> FeeRule:
        if self.type == FeeKind.FIXED:
            return FixedFee(amount=self.value)
        return PercentageFee(rate=self.value)


class PenaltyTierSchema(BaseModel):
    """Penalty tier as stored: {"fromDay", "toDay", "type", "value", "frequency"}"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    from_day: int = Field(1, alias="fromDay", ge=1)
    to_day: Optional[int] = Field(None, alias="toDay", ge=1)
    type: PenaltyKind
    value: Decimal = Field(..., ge=0)
    frequency: PenaltyFrequency = PenaltyFrequency.DAILY

    @field_validator("from_day", mode="before")
    @classmethod
    def blank_from_day(cls, value: Any) -> Any:
        return 1 if value == "" else value

    @field_validator("to_day", mode="before")
    @classmethod
    def blank_to_day(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("value", mode="before")
    @classmethod
    def blank_value(cls, value: Any) -> Any:
        return 0 if value == "" else value

    @field_validator("type", mode="before")
    @classmethod
    def map_kind(cls, value: Any) -> Any:
        return _PENALTY_KIND_ALIASES.get(value, value)

    @field_validator("frequency", mode="before")
    @classmethod
    def map_frequency(cls, value: Any) -> Any:
        return _FREQUENCY_ALIASES.get(value, value)

    @model_validator(mode="after")
    def check_range(self) -> "PenaltyTierSchema":
        if self.to_day is not None and self.to_day < self.from_day:
            raise ValueError(f"toDay {self.to_day} precedes fromDay {self.from_day}")
        return self

    def to_tier(self) -> PenaltyTier:
        return PenaltyTier(
            from_day=self.from_day,
            to_day=self.to_day,
            kind=self.type,
            amount=self.value,
            frequency=self.frequency,
        )


_penalty_tiers_adapter = TypeAdapter(List[PenaltyTierSchema])


def _load(raw: Any, label: str) -> Any:
    """Decode JSON text; dicts and lists pass through unchanged"""
    if isinstance(raw, (bytes, str)):
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ProductMisconfigured(f"{label} is not valid JSON: {e}") from e
    return raw


def parse_fee_rule(raw: Any, label: str = "serviceFee") -> Optional[FeeRule]:
    data = _load(raw, label)
    if data is None:
        return None
    try:
        return FeeRuleSchema.model_validate(data).to_rule()
    except ValidationError as e:
        raise ProductMisconfigured(f"{label} is malformed: {e}") from e


def parse_daily_fee_rule(raw: Any) -> Optional[DailyFeeRule]:
    data = _load(raw, "dailyFee")
    if data is None:
        return None
    try:
        schema = FeeRuleSchema.model_validate(data)
    except ValidationError as e:
        raise ProductMisconfigured(f"dailyFee is malformed: {e}") from e
    return DailyFeeRule(rule=schema.to_rule(), accrual_base=schema.calculation_base)


def parse_penalty_tiers(raw: Any) -> List[PenaltyTier]:
    data = _load(raw, "penaltyRules")
    if data is None:
        return []
    if not isinstance(data, list):
        raise ProductMisconfigured("penaltyRules must be a list of tiers")
    try:
        schemas = _penalty_tiers_adapter.validate_python(data)
    except ValidationError as e:
        raise ProductMisconfigured(f"penaltyRules is malformed: {e}") from e
    return [s.to_tier() for s in schemas]


def build_loan_product(
    *,
    id: int,
    provider_id: int,
    name: str,
    min_loan,
    max_loan,
    duration_days: int,
    service_fee: Any = None,
    daily_fee: Any = None,
    penalty_rules: Any = None,
    service_fee_enabled: bool = True,
    daily_fee_enabled: bool = True,
    penalty_enabled: bool = True,
    daily_fee_stops_at_due_date: bool = False,
    status: str = ProductStatus.ACTIVE.value,
) -> LoanProduct:
    """Validate raw product columns into a LoanProduct snapshot"""
    if duration_days is None or duration_days < 0:
        raise ProductMisconfigured(f"Product {id} has invalid duration {duration_days!r}")
    try:
        product_status = ProductStatus(status)
    except ValueError as e:
        raise ProductMisconfigured(f"Product {id} has unknown status {status!r}") from e

    return LoanProduct(
        id=id,
        provider_id=provider_id,
        name=name,
        min_loan=Decimal(str(min_loan)),
        max_loan=Decimal(str(max_loan)),
        duration_days=duration_days,
        service_fee=parse_fee_rule(service_fee),
        daily_fee=parse_daily_fee_rule(daily_fee),
        penalty_tiers=parse_penalty_tiers(penalty_rules),
        service_fee_enabled=service_fee_enabled,
        daily_fee_enabled=daily_fee_enabled,
        penalty_enabled=penalty_enabled,
        daily_fee_stops_at_due_date=daily_fee_stops_at_due_date,
        status=product_status,
    )
