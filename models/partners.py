from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, ForeignKey, JSON, text
from sqlalchemy.sql import func
import enum

from models import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def enum_values(enum_cls):
    # Salviamo in DB il value ("active"), non il name ("ACTIVE")
    return [m.value for m in enum_cls]


class PartnerStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class PartnerType(str, enum.Enum):
    AFFILIATE = "affiliate"
    RESELLER = "reseller"
    AGENCY = "agency"
    WHITE_LABEL = "white_label"


class CommissionType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    TIERED = "tiered"


class Partner(Base):
    __tablename__ = "partners"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(150), nullable=False)

    # Sempre lower-case + trim (normalizzata dal ledger)
    email = Column(String(255), nullable=False, unique=True)

    phone = Column(String(50), nullable=True)
    company_name = Column(String(255), nullable=True)
    document = Column(String(50), nullable=True)

    status = Column(
        Enum(PartnerStatus, name="partner_status", values_callable=enum_values),
        nullable=False,
        default=PartnerStatus.PENDING,
        server_default=text("'pending'"),
        index=True,
    )

    partner_type = Column(
        Enum(PartnerType, name="partner_type", values_callable=enum_values),
        nullable=False,
        default=PartnerType.AFFILIATE,
        server_default=text("'affiliate'"),
    )

    # percentage → 0-100 | fixed → importo fisso per pagamento
    commission_rate = Column(Numeric(10, 2), nullable=False, default=10)

    commission_type = Column(
        Enum(CommissionType, name="commission_type", values_callable=enum_values),
        nullable=False,
        default=CommissionType.PERCENTAGE,
        server_default=text("'percentage'"),
    )

    # Gerarchia agency / white label (albero, non ciclo)
    parent_partner_id = Column(Integer, ForeignKey("partners.id"), nullable=True, index=True)

    address = Column(JSON, nullable=True)
    bank_info = Column(JSON, nullable=True)

    # "metadata" è riservato da SQLAlchemy: attributo `meta`, colonna "metadata"
    meta = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )
