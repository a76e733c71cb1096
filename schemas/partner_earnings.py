# schemas/partner_earnings.py

from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Any, Optional, List
from datetime import datetime

from models.partners import CommissionType
from models.partner_earnings import EarningStatus
from schemas.partners import Money


class EarningCreate(BaseModel):
    amount: Decimal
    client_id: Optional[int] = None
    original_amount: Optional[Decimal] = None
    commission_rate: Optional[Decimal] = None
    commission_type: Optional[CommissionType] = None
    description: Optional[str] = None
    payment_date: Optional[datetime] = None
    status: Optional[EarningStatus] = None
    metadata: Optional[dict[str, Any]] = None


class EarningAction(BaseModel):
    earning_id: int
    notes: Optional[str] = None
    reason: Optional[str] = None


class MarkPaid(BaseModel):
    earning_id: int
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    paid_date: Optional[datetime] = None
    notes: Optional[str] = None


class BulkPay(BaseModel):
    earning_ids: List[int]
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    paid_date: Optional[datetime] = None


class MonthlyReportRequest(BaseModel):
    year: Optional[int] = None
    month: Optional[int] = None


class EarningOut(BaseModel):
    id: int
    partner_id: int
    client_id: Optional[int] = None
    amount: Money
    original_amount: Optional[Money] = None
    commission_rate: Optional[Money] = None
    commission_type: Optional[CommissionType] = None
    status: EarningStatus
    description: Optional[str] = None
    payment_date: datetime | None = None
    paid_date: datetime | None = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="meta")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class EarningEventOut(BaseModel):
    id: int
    earning_id: int
    action: str
    from_status: Optional[str] = None
    to_status: str
    reason: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True
