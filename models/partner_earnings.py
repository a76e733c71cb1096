from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Enum,
    ForeignKey,
    JSON,
    text,
)
from sqlalchemy.sql import func
import enum

from models import Base
from models.partners import CommissionType, utcnow, enum_values


class EarningStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"


class PartnerEarning(Base):
    """
    Commissione maturata dal partner.
    amount è immutabile: le correzioni passano da cancellazione + nuova earning.
    commission_rate / commission_type sono una FOTOGRAFIA del partner alla creazione.
    """
    __tablename__ = "partner_earnings"

    id = Column(Integer, primary_key=True, index=True)

    partner_id = Column(Integer, ForeignKey("partners.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("partner_clients.id"), nullable=True, index=True)

    amount = Column(Numeric(12, 2), nullable=False)

    # Pagamento del cliente che ha generato la commissione (se presente)
    original_amount = Column(Numeric(12, 2), nullable=True)

    commission_rate = Column(Numeric(10, 2), nullable=True)
    commission_type = Column(
        Enum(CommissionType, name="commission_type", values_callable=enum_values),
        nullable=True,
    )

    status = Column(
        Enum(EarningStatus, name="earning_status", values_callable=enum_values),
        nullable=False,
        default=EarningStatus.PENDING,
        server_default=text("'pending'"),
        index=True,
    )

    description = Column(String(500), nullable=True)

    payment_date = Column(DateTime(timezone=True), nullable=True)
    paid_date = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String(100), nullable=True)
    payment_reference = Column(String(255), nullable=True)

    meta = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )
