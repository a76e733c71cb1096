# schemas/partners.py

from pydantic import BaseModel, EmailStr, Field, PlainSerializer
from decimal import Decimal
from typing import Annotated, Any, Optional, List
from datetime import datetime

from models.partners import PartnerStatus, PartnerType, CommissionType


# Importi: Decimal in Python, numero nel JSON
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class PartnerCreate(BaseModel):
    name: str
    email: EmailStr
    phone: Optional[str] = None
    company_name: Optional[str] = None
    document: Optional[str] = None
    partner_type: Optional[PartnerType] = None
    commission_rate: Optional[Decimal] = None
    commission_type: Optional[CommissionType] = None
    parent_partner_id: Optional[int] = None
    address: Optional[dict[str, Any]] = None
    bank_info: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None


class PartnerUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    document: Optional[str] = None
    status: Optional[PartnerStatus] = None
    partner_type: Optional[PartnerType] = None
    commission_rate: Optional[Decimal] = None
    commission_type: Optional[CommissionType] = None
    parent_partner_id: Optional[int] = None
    address: Optional[dict[str, Any]] = None
    bank_info: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None


class PartnerUpdateAction(PartnerUpdate):
    partner_id: int


class PartnerStatusAction(BaseModel):
    partner_id: int
    reason: Optional[str] = None


class BulkStatusUpdate(BaseModel):
    partner_ids: List[int]
    status: Optional[PartnerStatus] = None


class PartnerOut(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    company_name: Optional[str] = None
    document: Optional[str] = None
    status: PartnerStatus
    partner_type: PartnerType
    commission_rate: Money
    commission_type: CommissionType
    parent_partner_id: Optional[int] = None
    address: Optional[dict[str, Any]] = None
    bank_info: Optional[dict[str, Any]] = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="meta")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
