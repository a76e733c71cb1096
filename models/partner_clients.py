from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Enum,
    ForeignKey,
    JSON,
    UniqueConstraint,
    text,
)
from sqlalchemy.sql import func
import enum

from models import Base
from models.partners import utcnow, enum_values


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"
    TRIAL = "trial"
    PENDING = "pending"


class PartnerClient(Base):
    """
    Cliente portato da un partner.
    total_paid cresce solo tramite la registrazione pagamenti del ledger.
    """
    __tablename__ = "partner_clients"
    __table_args__ = (
        UniqueConstraint("partner_id", "client_email", name="uq_partner_clients_partner_email"),
    )

    id = Column(Integer, primary_key=True, index=True)

    partner_id = Column(Integer, ForeignKey("partners.id"), nullable=False, index=True)

    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False)
    client_phone = Column(String(50), nullable=True)
    client_company = Column(String(255), nullable=True)
    client_document = Column(String(50), nullable=True)

    subscription_plan = Column(String(100), nullable=True)
    subscription_value = Column(Numeric(12, 2), nullable=False, default=0)

    subscription_status = Column(
        Enum(SubscriptionStatus, name="subscription_status", values_callable=enum_values),
        nullable=False,
        default=SubscriptionStatus.PENDING,
        server_default=text("'pending'"),
        index=True,
    )

    referral_code = Column(String(100), nullable=True)
    referral_source = Column(String(100), nullable=True)
    notes = Column(String(1000), nullable=True)

    meta = Column("metadata", JSON, nullable=False, default=dict)

    total_paid = Column(Numeric(12, 2), nullable=False, default=0, server_default=text("0"))
    first_payment_date = Column(DateTime(timezone=True), nullable=True)
    last_payment_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )
