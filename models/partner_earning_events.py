# models/partner_earning_events.py

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func

from models import Base
from models.partners import utcnow


class PartnerEarningEvent(Base):
    """
    Audit log APPEND-ONLY delle earnings: una riga per creazione e per ogni transizione.
    Non viene mai aggiornata né cancellata, così resta tutta la storia
    (il campo metadata della earning contiene solo l'ultimo stato "comodo" per la UI).
    """
    __tablename__ = "partner_earning_events"

    id = Column(Integer, primary_key=True, index=True)

    earning_id = Column(Integer, ForeignKey("partner_earnings.id"), nullable=False, index=True)
    partner_id = Column(Integer, ForeignKey("partners.id"), nullable=False, index=True)

    # create | approve | mark_paid | bulk_pay | cancel | hold | release
    action = Column(String(50), nullable=False)

    # None sulla creazione
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)

    reason = Column(String(1000), nullable=True)

    details = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
