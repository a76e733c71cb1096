# schemas/partner_clients.py

from pydantic import BaseModel, EmailStr, Field
from decimal import Decimal
from typing import Any, Optional, List
from datetime import datetime

from models.partner_clients import SubscriptionStatus
from schemas.partners import Money


class ClientCreate(BaseModel):
    client_name: str
    client_email: EmailStr
    client_phone: Optional[str] = None
    client_company: Optional[str] = None
    client_document: Optional[str] = None
    subscription_plan: Optional[str] = None
    subscription_value: Optional[Decimal] = None
    subscription_status: Optional[SubscriptionStatus] = None
    referral_code: Optional[str] = None
    referral_source: Optional[str] = None
    notes: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class ClientUpdate(BaseModel):
    # total_paid e date di pagamento NON sono modificabili da qui
    client_id: int
    client_name: Optional[str] = None
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = None
    client_company: Optional[str] = None
    client_document: Optional[str] = None
    subscription_plan: Optional[str] = None
    subscription_value: Optional[Decimal] = None
    subscription_status: Optional[SubscriptionStatus] = None
    referral_code: Optional[str] = None
    referral_source: Optional[str] = None
    notes: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class RecordPayment(BaseModel):
    client_id: int
    amount: Decimal
    payment_date: Optional[datetime] = None
    description: Optional[str] = None


class CancelClient(BaseModel):
    client_id: int
    reason: Optional[str] = None


class BulkImport(BaseModel):
    # righe validate una per una dal ledger (gli errori finiscono nel report)
    clients: List[dict[str, Any]]


class ClientOut(BaseModel):
    id: int
    partner_id: int
    client_name: str
    client_email: str
    client_phone: Optional[str] = None
    client_company: Optional[str] = None
    client_document: Optional[str] = None
    subscription_plan: Optional[str] = None
    subscription_value: Money
    subscription_status: SubscriptionStatus
    referral_code: Optional[str] = None
    referral_source: Optional[str] = None
    notes: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="meta")
    total_paid: Money
    first_payment_date: datetime | None = None
    last_payment_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
