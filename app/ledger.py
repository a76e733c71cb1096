# app/ledger.py

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.commission import (
    ZERO,
    calc_commission,
    money2,
    sum_amounts,
    to_decimal,
    validate_commission,
)
from app.config import settings
from app.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.store import LedgerStore
from models.partners import Partner, PartnerStatus, PartnerType, CommissionType, utcnow
from models.partner_clients import PartnerClient, SubscriptionStatus
from models.partner_earnings import PartnerEarning, EarningStatus
from models.partner_earning_events import PartnerEarningEvent

logger = logging.getLogger(__name__)


# -------------------------------------------------
# STATE MACHINE EARNINGS
# azione → (stati sorgente ammessi, stato finale)
# -------------------------------------------------
PAYABLE = frozenset({EarningStatus.PENDING, EarningStatus.APPROVED})

TRANSITIONS: dict[str, tuple[frozenset, EarningStatus]] = {
    "approve": (frozenset({EarningStatus.PENDING}), EarningStatus.APPROVED),
    "mark_paid": (PAYABLE, EarningStatus.PAID),
    "bulk_pay": (PAYABLE, EarningStatus.PAID),
    "cancel": (
        frozenset({EarningStatus.PENDING, EarningStatus.APPROVED, EarningStatus.ON_HOLD}),
        EarningStatus.CANCELLED,
    ),
    "hold": (PAYABLE, EarningStatus.ON_HOLD),
    "release": (frozenset({EarningStatus.ON_HOLD}), EarningStatus.PENDING),
}

TERMINAL = frozenset({EarningStatus.PAID, EarningStatus.CANCELLED})

# Stati con cui si può creare a mano una earning
CREATABLE = frozenset({EarningStatus.PENDING, EarningStatus.APPROVED, EarningStatus.ON_HOLD})

# -------------------------------------------------
# CAMPI MODIFICABILI / ORDINABILI
# -------------------------------------------------
PARTNER_UPDATABLE = (
    "name", "email", "phone", "company_name", "document",
    "status", "partner_type", "commission_rate", "commission_type",
    "parent_partner_id", "address", "bank_info", "metadata",
)

# total_paid / first_payment_date / last_payment_date: SOLO via record_payment
CLIENT_UPDATABLE = (
    "client_name", "client_email", "client_phone", "client_company",
    "client_document", "subscription_plan", "subscription_value",
    "subscription_status", "referral_code", "referral_source",
    "notes", "metadata",
)

PARTNER_SORT = {"created_at", "updated_at", "name", "email", "status", "partner_type", "commission_rate"}
CLIENT_SORT = {
    "created_at", "updated_at", "client_name", "client_email", "subscription_status",
    "subscription_value", "total_paid", "last_payment_date",
}
EARNING_SORT = {"created_at", "updated_at", "amount", "status", "payment_date", "paid_date"}


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite restituisce datetime naive: li consideriamo UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize_email(value: Any) -> str:
    email = str(value or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    return email


def parse_enum(enum_cls, value: Any, field: str):
    try:
        return enum_cls(str(value.value if isinstance(value, enum_cls) else value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}")


def is_all(value: Any) -> bool:
    return value is None or value == "" or value == "all"


def _month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def _range_start(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _range_end_condition(column, value: date | datetime):
    # Una data "secca" include tutto il giorno: < giorno successivo
    if isinstance(value, datetime):
        return column <= as_utc(value)
    return column < datetime.combine(value + timedelta(days=1), time.min, tzinfo=timezone.utc)


class CommissionLedger:
    """
    Ciclo di vita di partner, clienti referenziati e commissioni (earnings).

    Un'istanza per richiesta: nessuno stato in memoria oltre alla sessione DB.
    Ogni operazione pubblica fa commit a fine lavoro, oppure solleva un errore
    tipizzato (ValidationError, ConflictError, NotFoundError, InvalidStateError,
    StorageError) senza scritture parziali.
    """

    def __init__(self, db: Session, now: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.store = LedgerStore(db)
        self._now = now or utcnow

    def now(self) -> datetime:
        return as_utc(self._now())

    # =================================================
    # HELPERS
    # =================================================
    def _page(self, page: Any, limit: Any) -> tuple[int, int]:
        try:
            page = int(page or 1)
            limit = int(limit or settings.default_page_size)
        except (TypeError, ValueError):
            raise ValidationError("page and limit must be integers")
        if page < 1:
            raise ValidationError("page must be >= 1")
        if limit < 1 or limit > settings.max_page_size:
            raise ValidationError(f"limit must be between 1 and {settings.max_page_size}")
        return page, limit

    @staticmethod
    def _sort(sort_by: Optional[str], sort_order: Optional[str], allowed: set[str]) -> tuple[str, bool]:
        sort_by = sort_by or "created_at"
        if sort_by not in allowed:
            raise ValidationError(f"sort_by must be one of: {', '.join(sorted(allowed))}")
        order = (sort_order or "desc").lower()
        if order not in ("asc", "desc"):
            raise ValidationError("sort_order must be asc or desc")
        return sort_by, order == "asc"

    @staticmethod
    def _pagination(page: int, limit: int, total: int) -> dict[str, int]:
        return {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        }

    def get_partner_or_404(self, partner_id: int) -> Partner:
        partner = self.store.find_one(Partner, id=partner_id)
        if not partner:
            raise NotFoundError("Partner not found")
        return partner

    def _get_client(self, partner_id: int, client_id: int) -> PartnerClient:
        client = self.store.find_one(PartnerClient, id=client_id, partner_id=partner_id)
        if not client:
            raise NotFoundError("Client not found for this partner")
        return client

    def _get_earning(self, partner_id: int, earning_id: int) -> PartnerEarning:
        earning = self.store.find_one(PartnerEarning, id=earning_id, partner_id=partner_id)
        if not earning:
            raise NotFoundError("Earning not found for this partner")
        return earning

    def _check_parent(self, parent_id: Optional[int], partner_id: Optional[int] = None) -> Optional[int]:
        """
        Il parent deve esistere e non deve creare un ciclo nella gerarchia.
        """
        if parent_id is None:
            return None
        if partner_id is not None and parent_id == partner_id:
            raise ValidationError("A partner cannot be its own parent")

        parent = self.store.find_one(Partner, id=parent_id)
        if not parent:
            raise ValidationError("parent_partner_id does not reference an existing partner")

        if partner_id is not None:
            seen = set()
            cursor = parent
            while cursor is not None and cursor.parent_partner_id is not None:
                if cursor.parent_partner_id == partner_id:
                    raise ValidationError("parent_partner_id would create a cycle")
                if cursor.id in seen:
                    break
                seen.add(cursor.id)
                cursor = self.store.find_one(Partner, id=cursor.parent_partner_id)
        return parent_id

    def _log_event(
        self,
        earning: PartnerEarning,
        action: str,
        from_status: Optional[EarningStatus],
        to_status: EarningStatus,
        reason: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> PartnerEarningEvent:
        event = PartnerEarningEvent(
            earning_id=earning.id,
            partner_id=earning.partner_id,
            action=action,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            reason=reason,
            details=details or None,
            created_at=self.now(),
        )
        return self.store.insert(event)

    # =================================================
    # PARTNERS
    # =================================================
    def create_partner(self, data: dict[str, Any]) -> Partner:
        name = str(data.get("name") or "").strip()
        if not name or not data.get("email"):
            raise ValidationError("name and email are required")

        email = normalize_email(data["email"])
        if self.store.find_one(Partner, email=email):
            raise ConflictError("A partner with this email already exists")

        partner_type = parse_enum(PartnerType, data.get("partner_type") or PartnerType.AFFILIATE, "partner_type")
        commission_type = parse_enum(
            CommissionType, data.get("commission_type") or CommissionType.PERCENTAGE, "commission_type"
        )
        raw_rate = data.get("commission_rate")
        rate = to_decimal(raw_rate if raw_rate is not None else settings.default_commission_rate, "commission_rate")
        validate_commission(rate, commission_type)

        now = self.now()
        partner = Partner(
            name=name,
            email=email,
            phone=data.get("phone"),
            company_name=data.get("company_name"),
            document=data.get("document"),
            status=PartnerStatus.PENDING,
            partner_type=partner_type,
            commission_rate=money2(rate),
            commission_type=commission_type,
            parent_partner_id=self._check_parent(data.get("parent_partner_id")),
            address=data.get("address"),
            bank_info=data.get("bank_info"),
            meta=dict(data.get("metadata") or {}),
            created_at=now,
            updated_at=now,
        )
        self.store.insert(partner)
        self.store.commit()
        logger.info("Partner creato id=%s email=%s", partner.id, email)
        return self.store.refresh(partner)

    def get_partner(
        self,
        partner_id: int,
        include_clients: bool = False,
        include_earnings: bool = False,
        include_sub_partners: bool = False,
    ) -> dict[str, Any]:
        partner = self.get_partner_or_404(partner_id)
        result: dict[str, Any] = {"partner": partner}

        if include_clients:
            clients, total = self.store.find_many(
                PartnerClient, {"partner_id": partner_id}, sort_by="created_at"
            )
            result["clients"] = clients
            result["clients_count"] = total

        if include_earnings:
            recent, _ = self.store.find_many(
                PartnerEarning, {"partner_id": partner_id}, sort_by="created_at", limit=10
            )
            all_rows, _ = self.store.find_many(PartnerEarning, {"partner_id": partner_id})
            result["earnings"] = {
                "recent_earnings": recent,
                "total_earned": sum_amounts(all_rows),
                "pending_amount": sum_amounts(e for e in all_rows if e.status == EarningStatus.PENDING),
                "paid_amount": sum_amounts(e for e in all_rows if e.status == EarningStatus.PAID),
            }

        if include_sub_partners:
            # un solo livello: figli diretti
            subs, total = self.store.find_many(
                Partner, {"parent_partner_id": partner_id}, sort_by="created_at"
            )
            result["sub_partners"] = subs
            result["sub_partners_count"] = total

        return result

    def list_partners(
        self,
        status: Optional[str] = None,
        partner_type: Optional[str] = None,
        parent_partner_id: Optional[int] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> dict[str, Any]:
        page, limit = self._page(page, limit)
        sort_by, ascending = self._sort(sort_by, sort_order, PARTNER_SORT)

        filters: dict[str, Any] = {}
        if not is_all(status):
            filters["status"] = parse_enum(PartnerStatus, status, "status")
        if not is_all(partner_type):
            filters["partner_type"] = parse_enum(PartnerType, partner_type, "partner_type")
        if parent_partner_id is not None:
            filters["parent_partner_id"] = parent_partner_id

        conditions = []
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(
                or_(
                    Partner.name.ilike(pattern),
                    Partner.email.ilike(pattern),
                    Partner.company_name.ilike(pattern),
                )
            )

        items, total = self.store.find_many(
            Partner, filters, conditions, sort_by=sort_by, ascending=ascending, page=page, limit=limit
        )
        return {"items": items, "pagination": self._pagination(page, limit, total)}

    def update_partner(self, partner_id: int, patch: dict[str, Any]) -> Partner:
        partner = self.get_partner_or_404(partner_id)

        updates: dict[str, Any] = {}
        for field in PARTNER_UPDATABLE:
            if field in patch:
                updates[field] = patch[field]

        if "name" in updates:
            name = str(updates["name"] or "").strip()
            if not name:
                raise ValidationError("name cannot be empty")
            updates["name"] = name

        if "email" in updates:
            email = normalize_email(updates["email"])
            if email != partner.email and self.store.exists(
                Partner, [Partner.id != partner_id], email=email
            ):
                raise ConflictError("A partner with this email already exists")
            updates["email"] = email

        if "status" in updates:
            updates["status"] = parse_enum(PartnerStatus, updates["status"], "status")
        if "partner_type" in updates:
            updates["partner_type"] = parse_enum(PartnerType, updates["partner_type"], "partner_type")
        if "commission_type" in updates:
            updates["commission_type"] = parse_enum(CommissionType, updates["commission_type"], "commission_type")

        if "commission_rate" in updates or "commission_type" in updates:
            rate = to_decimal(updates.get("commission_rate", partner.commission_rate), "commission_rate")
            ctype = updates.get("commission_type", CommissionType(partner.commission_type))
            validate_commission(rate, ctype)
            if "commission_rate" in updates:
                updates["commission_rate"] = money2(rate)

        if "parent_partner_id" in updates:
            updates["parent_partner_id"] = self._check_parent(updates["parent_partner_id"], partner_id)

        if "metadata" in updates:
            updates["meta"] = dict(updates.pop("metadata") or {})

        for field, value in updates.items():
            setattr(partner, field, value)
        partner.updated_at = self.now()

        self.store.commit()
        logger.info("Partner aggiornato id=%s campi=%s", partner_id, sorted(updates))
        return self.store.refresh(partner)

    def _set_partner_status(
        self, partner_id: int, status: PartnerStatus, meta_patch: Optional[dict[str, Any]] = None
    ) -> Partner:
        partner = self.get_partner_or_404(partner_id)
        partner.status = status
        if meta_patch:
            meta = dict(partner.meta or {})
            meta.update(meta_patch)
            partner.meta = meta
        partner.updated_at = self.now()
        self.store.commit()
        logger.info("Partner id=%s → status=%s", partner_id, status.value)
        return self.store.refresh(partner)

    def activate_partner(self, partner_id: int) -> Partner:
        return self._set_partner_status(partner_id, PartnerStatus.ACTIVE)

    def suspend_partner(self, partner_id: int, reason: Optional[str] = None) -> Partner:
        return self._set_partner_status(
            partner_id,
            PartnerStatus.SUSPENDED,
            {
                "suspended_at": self.now().isoformat(),
                "suspension_reason": reason or "No reason provided",
            },
        )

    def bulk_update_status(self, partner_ids: Iterable[int], status: Any) -> int:
        ids = sorted({int(i) for i in (partner_ids or [])})
        if not ids:
            raise ValidationError("partner_ids array is required")
        new_status = parse_enum(PartnerStatus, status, "status") if status else None
        if new_status is None:
            raise ValidationError("Valid status is required (active, inactive, pending, suspended)")

        rows = self.store.update(Partner, {"id": ids}, {"status": new_status, "updated_at": self.now()})
        self.store.commit()
        logger.info("Bulk status partner: %s/%s aggiornati → %s", rows, len(ids), new_status.value)
        return rows

    def delete_partner(self, partner_id: int, hard: bool = False) -> Optional[Partner]:
        """
        Soft delete (default): status=inactive, si tiene lo storico.
        Hard delete solo se il partner non ha clienti, earnings o sub-partner.
        """
        partner = self.get_partner_or_404(partner_id)

        if not hard:
            return self._set_partner_status(
                partner_id,
                PartnerStatus.INACTIVE,
                {"deactivated_at": self.now().isoformat()},
            )

        has_clients = self.store.exists(PartnerClient, partner_id=partner_id)
        has_earnings = self.store.exists(PartnerEarning, partner_id=partner_id)
        has_sub_partners = self.store.exists(Partner, parent_partner_id=partner_id)

        if has_clients or has_earnings or has_sub_partners:
            logger.warning("Hard delete rifiutato partner_id=%s (dati associati)", partner_id)
            raise ValidationError(
                "Cannot hard delete partner with associated data. Use soft delete instead.",
                extra={
                    "has_clients": has_clients,
                    "has_earnings": has_earnings,
                    "has_sub_partners": has_sub_partners,
                },
            )

        self.store.delete(partner)
        self.store.commit()
        logger.info("Partner eliminato definitivamente id=%s", partner_id)
        return None

    def partner_stats(self) -> dict[str, Any]:
        by_status = self.store.count_by(Partner, "status")
        by_type = self.store.count_by(Partner, "partner_type")
        return {
            "total": sum(by_status.values()),
            "by_status": {PartnerStatus(k).value: v for k, v in by_status.items()},
            "by_type": {PartnerType(k).value: v for k, v in by_type.items()},
        }

    # =================================================
    # CLIENTI
    # =================================================
    def _build_client(self, partner_id: int, data: dict[str, Any], referral_source: str) -> PartnerClient:
        name = str(data.get("client_name") or "").strip()
        if not name or not data.get("client_email"):
            raise ValidationError("client_name and client_email are required")

        raw_value = data.get("subscription_value")
        value = to_decimal(raw_value, "subscription_value") if raw_value is not None else ZERO
        if value < 0:
            raise ValidationError("subscription_value must be >= 0")

        now = self.now()
        return PartnerClient(
            partner_id=partner_id,
            client_name=name,
            client_email=normalize_email(data["client_email"]),
            client_phone=data.get("client_phone"),
            client_company=data.get("client_company"),
            client_document=data.get("client_document"),
            subscription_plan=data.get("subscription_plan"),
            subscription_value=money2(value),
            subscription_status=parse_enum(
                SubscriptionStatus,
                data.get("subscription_status") or SubscriptionStatus.PENDING,
                "subscription_status",
            ),
            referral_code=data.get("referral_code"),
            referral_source=data.get("referral_source") or referral_source,
            notes=data.get("notes"),
            meta=dict(data.get("metadata") or {}),
            total_paid=ZERO,
            created_at=now,
            updated_at=now,
        )

    def create_client(self, partner_id: int, data: dict[str, Any]) -> PartnerClient:
        self.get_partner_or_404(partner_id)
        client = self._build_client(partner_id, data, "partner_referral")

        if self.store.find_one(PartnerClient, partner_id=partner_id, client_email=client.client_email):
            raise ConflictError("A client with this email already exists for this partner")

        self.store.insert(client)
        self.store.commit()
        logger.info("Cliente creato id=%s partner_id=%s", client.id, partner_id)
        return self.store.refresh(client)

    def update_client(self, partner_id: int, client_id: int, patch: dict[str, Any]) -> PartnerClient:
        client = self._get_client(partner_id, client_id)

        updates = {f: patch[f] for f in CLIENT_UPDATABLE if f in patch}

        if "client_name" in updates:
            name = str(updates["client_name"] or "").strip()
            if not name:
                raise ValidationError("client_name cannot be empty")
            updates["client_name"] = name

        if "client_email" in updates:
            email = normalize_email(updates["client_email"])
            if email != client.client_email and self.store.exists(
                PartnerClient,
                [PartnerClient.id != client_id],
                partner_id=partner_id,
                client_email=email,
            ):
                raise ConflictError("A client with this email already exists for this partner")
            updates["client_email"] = email

        if "subscription_status" in updates:
            updates["subscription_status"] = parse_enum(
                SubscriptionStatus, updates["subscription_status"], "subscription_status"
            )

        if "subscription_value" in updates:
            value = to_decimal(updates["subscription_value"], "subscription_value")
            if value < 0:
                raise ValidationError("subscription_value must be >= 0")
            updates["subscription_value"] = money2(value)

        if "metadata" in updates:
            updates["meta"] = dict(updates.pop("metadata") or {})

        for field, value in updates.items():
            setattr(client, field, value)
        client.updated_at = self.now()

        self.store.commit()
        return self.store.refresh(client)

    def record_payment(
        self,
        partner_id: int,
        client_id: int,
        amount: Any,
        payment_date: Optional[datetime] = None,
        description: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Registra un pagamento del cliente e genera la commissione del partner.

        - total_paid += amount (incremento atomico lato SQL)
        - last_payment_date sempre aggiornata, first_payment_date solo la prima volta
        - cliente pending → active al primo pagamento
        - commissione calcolata con rate/type del partner IN QUESTO MOMENTO (snapshot)
        """
        partner = self.get_partner_or_404(partner_id)

        # arrotondato PRIMA del controllo: 0.004 diventa 0.00 e viene rifiutato
        amount = money2(to_decimal(amount))
        if amount <= 0:
            raise ValidationError("amount must be greater than 0")

        client = self._get_client(partner_id, client_id)
        client_name = client.client_name

        commission_type = CommissionType(partner.commission_type)
        commission_rate = Decimal(str(partner.commission_rate))
        # tiered → ValidationError PRIMA di qualsiasi scrittura
        commission = calc_commission(amount, commission_rate, commission_type)

        now = self.now()
        paid_at = as_utc(payment_date) or now

        self.store.increment(
            PartnerClient,
            {"id": client_id},
            "total_paid",
            amount,
            {"last_payment_date": paid_at, "updated_at": now},
        )
        # condizionali: idempotenti anche con pagamenti concorrenti
        self.store.update(
            PartnerClient,
            {"id": client_id, "first_payment_date": None},
            {"first_payment_date": paid_at},
        )
        self.store.update(
            PartnerClient,
            {"id": client_id, "subscription_status": SubscriptionStatus.PENDING},
            {"subscription_status": SubscriptionStatus.ACTIVE},
        )

        earning = None
        if commission > 0:
            earning = PartnerEarning(
                partner_id=partner_id,
                client_id=client_id,
                amount=commission,
                original_amount=amount,
                commission_rate=commission_rate,
                commission_type=commission_type,
                status=EarningStatus.PENDING,
                description=description or f"Commission for payment from {client_name}",
                payment_date=paid_at,
                meta={},
                created_at=now,
                updated_at=now,
            )
            self.store.insert(earning)
            self._log_event(
                earning,
                "create",
                None,
                EarningStatus.PENDING,
                details={"source": "record_payment", "original_amount": str(amount)},
            )

        self.store.commit()
        logger.info(
            "Pagamento registrato client_id=%s partner_id=%s amount=%s commission=%s",
            client_id, partner_id, amount, commission if earning else ZERO,
        )

        client = self._get_client(partner_id, client_id)
        return {
            "client": client,
            "payment": {
                "amount": amount,
                "date": paid_at,
                "commission_generated": commission if earning else ZERO,
                "earning_id": earning.id if earning else None,
            },
        }

    def cancel_client(self, partner_id: int, client_id: int, reason: Optional[str] = None) -> PartnerClient:
        client = self._get_client(partner_id, client_id)

        meta = dict(client.meta or {})
        meta.update({
            "cancellation_date": self.now().isoformat(),
            "cancellation_reason": reason or "Not specified",
        })
        client.meta = meta
        client.subscription_status = SubscriptionStatus.CANCELLED
        client.updated_at = self.now()

        self.store.commit()
        logger.info("Abbonamento cliente cancellato client_id=%s partner_id=%s", client_id, partner_id)
        return self.store.refresh(client)

    def bulk_import_clients(self, partner_id: int, clients: list[dict[str, Any]]) -> dict[str, Any]:
        """
        Import massivo: le righe invalide o duplicate vengono scartate e riportate,
        le altre inserite in un'unica transazione.
        """
        self.get_partner_or_404(partner_id)
        if not clients:
            raise ValidationError("clients array is required")

        results: dict[str, Any] = {"success": 0, "failed": 0, "errors": []}
        seen: set[str] = set()
        to_insert: list[PartnerClient] = []

        for row in clients:
            raw_email = (row or {}).get("client_email") or "unknown"
            try:
                client = self._build_client(partner_id, row or {}, "bulk_import")
                if client.client_email in seen or self.store.exists(
                    PartnerClient, partner_id=partner_id, client_email=client.client_email
                ):
                    raise ConflictError("Client already exists")
            except ValidationError as e:
                results["failed"] += 1
                results["errors"].append({"email": raw_email, "error": e.message})
                continue

            seen.add(client.client_email)
            to_insert.append(client)

        self.store.insert_many(to_insert)
        self.store.commit()
        results["success"] = len(to_insert)

        logger.info(
            "Import clienti partner_id=%s: %s ok, %s scartati",
            partner_id, results["success"], results["failed"],
        )
        return results

    def delete_client(self, partner_id: int, client_id: int) -> None:
        client = self._get_client(partner_id, client_id)
        if self.store.exists(PartnerEarning, client_id=client_id):
            raise ValidationError(
                "Cannot delete a client referenced by earnings. Cancel the subscription instead."
            )
        self.store.delete(client)
        self.store.commit()
        logger.info("Cliente rimosso client_id=%s partner_id=%s", client_id, partner_id)

    def list_clients(
        self,
        partner_id: int,
        status: Optional[str] = None,
        subscription_plan: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> dict[str, Any]:
        self.get_partner_or_404(partner_id)
        page, limit = self._page(page, limit)
        sort_by, ascending = self._sort(sort_by, sort_order, CLIENT_SORT)

        filters: dict[str, Any] = {"partner_id": partner_id}
        if not is_all(status):
            filters["subscription_status"] = parse_enum(SubscriptionStatus, status, "status")
        if not is_all(subscription_plan):
            filters["subscription_plan"] = subscription_plan

        conditions = []
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(
                or_(
                    PartnerClient.client_name.ilike(pattern),
                    PartnerClient.client_email.ilike(pattern),
                    PartnerClient.client_company.ilike(pattern),
                )
            )

        items, total = self.store.find_many(
            PartnerClient, filters, conditions, sort_by=sort_by, ascending=ascending, page=page, limit=limit
        )

        all_clients, _ = self.store.find_many(PartnerClient, {"partner_id": partner_id})
        active = [c for c in all_clients if c.subscription_status == SubscriptionStatus.ACTIVE]
        summary = {
            "total_clients": total,
            "active_clients": len(active),
            "inactive_clients": sum(
                1 for c in all_clients if c.subscription_status == SubscriptionStatus.INACTIVE
            ),
            "total_mrr": money2(sum((Decimal(str(c.subscription_value or 0)) for c in active), ZERO)),
            "total_revenue": money2(sum((Decimal(str(c.total_paid or 0)) for c in all_clients), ZERO)),
        }
        return {"items": items, "summary": summary, "pagination": self._pagination(page, limit, total)}

    # =================================================
    # EARNINGS: creazione
    # =================================================
    def create_earning(
        self,
        partner_id: int,
        amount: Any,
        client_id: Optional[int] = None,
        original_amount: Any = None,
        commission_rate: Any = None,
        commission_type: Any = None,
        description: Optional[str] = None,
        payment_date: Optional[datetime] = None,
        status: Any = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> PartnerEarning:
        partner = self.get_partner_or_404(partner_id)

        amount = money2(to_decimal(amount))
        if amount <= 0:
            raise ValidationError("Valid amount is required")

        if client_id is not None:
            self._get_client(partner_id, client_id)

        initial = parse_enum(EarningStatus, status, "status") if status else EarningStatus.PENDING
        if initial not in CREATABLE:
            raise ValidationError("An earning can only be created as pending, approved or on_hold")

        rate = (
            to_decimal(commission_rate, "commission_rate")
            if commission_rate is not None
            else Decimal(str(partner.commission_rate))
        )
        ctype = (
            parse_enum(CommissionType, commission_type, "commission_type")
            if commission_type
            else CommissionType(partner.commission_type)
        )

        now = self.now()
        earning = PartnerEarning(
            partner_id=partner_id,
            client_id=client_id,
            amount=money2(amount),
            original_amount=money2(to_decimal(original_amount, "original_amount"))
            if original_amount is not None
            else None,
            commission_rate=rate,
            commission_type=ctype,
            status=initial,
            description=description or "Manual commission entry",
            payment_date=as_utc(payment_date),
            meta=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        self.store.insert(earning)
        self._log_event(earning, "create", None, initial, details={"source": "manual"})
        self.store.commit()

        logger.info("Earning creata id=%s partner_id=%s amount=%s", earning.id, partner_id, earning.amount)
        return self.store.refresh(earning)

    # =================================================
    # EARNINGS: transizioni di stato
    # =================================================
    def _transition(
        self,
        partner_id: int,
        earning_id: int,
        action: str,
        meta_patch: dict[str, Any],
        patch: Optional[dict[str, Any]] = None,
        reason: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> PartnerEarning:
        """
        Transizione come UPDATE condizionale:
            WHERE id=? AND partner_id=? AND status IN (sorgenti ammesse)
        Se nessuna riga viene toccata, qualcun altro ha cambiato lo stato nel frattempo
        (o non era valido): rileggiamo e segnaliamo InvalidStateError.
        """
        sources, target = TRANSITIONS[action]

        earning = self._get_earning(partner_id, earning_id)
        current = EarningStatus(earning.status)
        if current not in sources:
            logger.warning("Transizione rifiutata earning_id=%s %s da %s", earning_id, action, current.value)
            raise InvalidStateError(current.value, action)

        meta = dict(earning.meta or {})
        meta.update(meta_patch)

        values = dict(patch or {})
        values.update({"status": target, "meta": meta, "updated_at": self.now()})

        rows = self.store.update(
            PartnerEarning,
            {"id": earning_id, "partner_id": partner_id, "status": list(sources)},
            values,
        )
        if rows == 0:
            fresh = self._get_earning(partner_id, earning_id)
            logger.warning(
                "Transizione concorrente earning_id=%s %s: ora %s", earning_id, action, fresh.status
            )
            raise InvalidStateError(EarningStatus(fresh.status).value, action)

        earning = self._get_earning(partner_id, earning_id)
        self._log_event(earning, action, current, target, reason=reason, details=details)
        self.store.commit()

        logger.info("Earning id=%s %s: %s → %s", earning_id, action, current.value, target.value)
        return self.store.refresh(earning)

    def approve(self, partner_id: int, earning_id: int, notes: Optional[str] = None) -> PartnerEarning:
        return self._transition(
            partner_id,
            earning_id,
            "approve",
            {"approved_at": self.now().isoformat(), "approval_notes": notes},
            reason=notes,
        )

    def mark_paid(
        self,
        partner_id: int,
        earning_id: int,
        payment_method: Optional[str] = None,
        payment_reference: Optional[str] = None,
        paid_date: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> PartnerEarning:
        paid_at = as_utc(paid_date) or self.now()
        details = {
            "paid_date": paid_at.isoformat(),
            "payment_method": payment_method,
            "payment_reference": payment_reference,
        }
        return self._transition(
            partner_id,
            earning_id,
            "mark_paid",
            {"paid_at": self.now().isoformat(), "payment_notes": notes},
            patch={
                "paid_date": paid_at,
                "payment_method": payment_method,
                "payment_reference": payment_reference,
            },
            reason=notes,
            details=details,
        )

    def cancel(self, partner_id: int, earning_id: int, reason: Optional[str] = None) -> PartnerEarning:
        reason = reason or "No reason provided"
        return self._transition(
            partner_id,
            earning_id,
            "cancel",
            {"cancelled_at": self.now().isoformat(), "cancellation_reason": reason},
            reason=reason,
        )

    def hold(self, partner_id: int, earning_id: int, reason: Optional[str] = None) -> PartnerEarning:
        reason = reason or "Under review"
        return self._transition(
            partner_id,
            earning_id,
            "hold",
            {"on_hold_at": self.now().isoformat(), "hold_reason": reason},
            reason=reason,
        )

    def release(self, partner_id: int, earning_id: int, notes: Optional[str] = None) -> PartnerEarning:
        return self._transition(
            partner_id,
            earning_id,
            "release",
            {"released_at": self.now().isoformat(), "release_notes": notes},
            reason=notes,
        )

    def bulk_pay(
        self,
        partner_id: int,
        earning_ids: Iterable[int],
        payment_method: Optional[str] = None,
        payment_reference: Optional[str] = None,
        paid_date: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Paga in blocco le earnings valide (del partner, pending/approved).
        Le altre vengono saltate e riportate in skipped_ids, senza far fallire il batch.
        """
        requested = list(dict.fromkeys(int(i) for i in (earning_ids or [])))
        if not requested:
            raise ValidationError("earning_ids array is required")

        self.get_partner_or_404(partner_id)

        rows, _ = self.store.find_many(
            PartnerEarning, {"partner_id": partner_id, "id": requested}, sort_by="id", ascending=True
        )
        candidates = [
            (e.id, EarningStatus(e.status), Decimal(str(e.amount)))
            for e in rows
            if EarningStatus(e.status) in PAYABLE
        ]
        if not candidates:
            raise ValidationError("No valid earnings to pay")

        now = self.now()
        paid_at = as_utc(paid_date) or now
        details = {
            "paid_date": paid_at.isoformat(),
            "payment_method": payment_method,
            "payment_reference": payment_reference,
        }

        paid: list[tuple[int, EarningStatus, Decimal]] = []
        for earning_id, status, amount in candidates:
            applied = self.store.update(
                PartnerEarning,
                {"id": earning_id, "partner_id": partner_id, "status": list(PAYABLE)},
                {
                    "status": EarningStatus.PAID,
                    "paid_date": paid_at,
                    "payment_method": payment_method,
                    "payment_reference": payment_reference,
                    "updated_at": now,
                },
            )
            if applied:
                paid.append((earning_id, status, amount))

        if not paid:
            raise ValidationError("No valid earnings to pay")

        paid_ids = [p[0] for p in paid]
        earnings, _ = self.store.find_many(
            PartnerEarning, {"id": paid_ids}, sort_by="id", ascending=True
        )
        by_id = {e.id: e for e in earnings}
        for earning_id, status, _amount in paid:
            self._log_event(by_id[earning_id], "bulk_pay", status, EarningStatus.PAID, details=details)

        self.store.commit()

        total = money2(sum((p[2] for p in paid), ZERO))
        skipped = [i for i in requested if i not in set(paid_ids)]
        logger.info(
            "Bulk pay partner_id=%s: %s pagate (totale %s), %s saltate",
            partner_id, len(paid_ids), total, len(skipped),
        )
        return {
            "paid_count": len(paid_ids),
            "total_paid": total,
            "paid_ids": paid_ids,
            "skipped_ids": skipped,
            "earnings": [by_id[i] for i in paid_ids],
        }

    def earning_history(self, partner_id: int, earning_id: int) -> list[PartnerEarningEvent]:
        self._get_earning(partner_id, earning_id)
        events, _ = self.store.find_many(
            PartnerEarningEvent,
            {"earning_id": earning_id, "partner_id": partner_id},
            sort_by="created_at",
            ascending=True,
        )
        return events

    # =================================================
    # EARNINGS: aggregati / report
    # =================================================
    def summary(self, partner_id: int) -> dict[str, Any]:
        """
        Totali per stato su TUTTE le earnings del partner.
        Σ importi per stato == total_earnings.
        """
        self.get_partner_or_404(partner_id)
        rows, _ = self.store.find_many(PartnerEarning, {"partner_id": partner_id})

        now = self.now()
        by_status = {s.value: [] for s in EarningStatus}
        this_month = []
        for e in rows:
            by_status[EarningStatus(e.status).value].append(e)
            created = as_utc(e.created_at)
            if created and created.year == now.year and created.month == now.month:
                this_month.append(e)

        result: dict[str, Any] = {"total_earnings": sum_amounts(rows)}
        for status, items in by_status.items():
            result[f"{status}_amount"] = sum_amounts(items)
        result.update({
            "this_month": sum_amounts(this_month),
            "total_transactions": len(rows),
            "pending_transactions": len(by_status[EarningStatus.PENDING.value]),
            "by_status": {s: len(items) for s, items in by_status.items() if items},
        })
        return result

    def list_earnings(
        self,
        partner_id: int,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        date_from: Optional[date | datetime] = None,
        date_to: Optional[date | datetime] = None,
        page: int = 1,
        limit: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Pagina di earnings + totali calcolati sullo STESSO filtro
        (i totali riflettono quello che si vede, non tutto lo storico).
        """
        self.get_partner_or_404(partner_id)
        page, limit = self._page(page, limit)
        sort_by, ascending = self._sort(sort_by, sort_order, EARNING_SORT)

        filters: dict[str, Any] = {"partner_id": partner_id}
        if not is_all(status):
            filters["status"] = parse_enum(EarningStatus, status, "status")
        if client_id is not None:
            filters["client_id"] = client_id

        conditions = []
        if date_from is not None:
            conditions.append(PartnerEarning.created_at >= _range_start(date_from))
        if date_to is not None:
            conditions.append(_range_end_condition(PartnerEarning.created_at, date_to))

        items, total = self.store.find_many(
            PartnerEarning, filters, conditions, sort_by=sort_by, ascending=ascending, page=page, limit=limit
        )
        filtered, _ = self.store.find_many(PartnerEarning, filters, conditions)

        totals = {
            "total_amount": sum_amounts(filtered),
            "pending": sum_amounts(e for e in filtered if e.status == EarningStatus.PENDING),
            "paid": sum_amounts(e for e in filtered if e.status == EarningStatus.PAID),
        }
        return {"items": items, "totals": totals, "pagination": self._pagination(page, limit, total)}

    def monthly_report(self, partner_id: int, year: Optional[int] = None, month: Optional[int] = None) -> dict[str, Any]:
        """
        Report mensile sulle earnings CREATE nel mese (created_at).
        month è 1-based: 1 = gennaio, 12 = dicembre.
        """
        self.get_partner_or_404(partner_id)

        now = self.now()
        year = now.year if year is None else year
        month = now.month if month is None else month
        try:
            year, month = int(year), int(month)
        except (TypeError, ValueError):
            raise ValidationError("year and month must be integers")
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12")
        if not 1 <= year <= 9998:
            raise ValidationError("year out of range")

        start, end = _month_bounds(year, month)
        rows, _ = self.store.find_many(
            PartnerEarning,
            {"partner_id": partner_id},
            [PartnerEarning.created_at >= start, PartnerEarning.created_at < end],
            sort_by="created_at",
            ascending=True,
        )

        by_day: dict[str, dict[str, Any]] = {}
        for e in rows:
            day = str(as_utc(e.created_at).day)
            bucket = by_day.setdefault(day, {"count": 0, "amount": ZERO})
            bucket["count"] += 1
            bucket["amount"] = money2(bucket["amount"] + Decimal(str(e.amount)))

        def _sum(status: EarningStatus) -> Decimal:
            return sum_amounts(e for e in rows if e.status == status)

        return {
            "period": {
                "year": year,
                "month": month,
                "start_date": start,
                "end_date": end - timedelta(seconds=1),
            },
            "summary": {
                "total_transactions": len(rows),
                "total_amount": sum_amounts(rows),
                "pending": _sum(EarningStatus.PENDING),
                "approved": _sum(EarningStatus.APPROVED),
                "paid": _sum(EarningStatus.PAID),
                "cancelled": _sum(EarningStatus.CANCELLED),
                "on_hold": _sum(EarningStatus.ON_HOLD),
            },
            "by_day": by_day,
            "transactions": rows,
        }
