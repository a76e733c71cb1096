# routers/partners.py

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status

from app.config import settings
from app.deps import get_ledger, ok, parse_payload
from app.errors import ValidationError
from app.ledger import CommissionLedger
from schemas.partners import (
    PartnerCreate,
    PartnerUpdate,
    PartnerUpdateAction,
    PartnerStatusAction,
    BulkStatusUpdate,
    PartnerOut,
)
from schemas.partner_clients import ClientOut
from schemas.partner_earnings import EarningOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/partners", tags=["Partners"])


def _partner(p) -> PartnerOut:
    return PartnerOut.model_validate(p)


# -----------------------------
# LISTA PARTNERS
# -----------------------------
@router.get("")
def list_partners(
    status_filter: Optional[str] = Query(None, alias="status"),
    partner_type: Optional[str] = None,
    parent_partner_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    ledger: CommissionLedger = Depends(get_ledger),
):
    result = ledger.list_partners(
        status=status_filter,
        partner_type=partner_type,
        parent_partner_id=parent_partner_id,
        search=search,
        page=page,
        limit=min(limit, settings.max_page_size),
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ok(
        [_partner(p) for p in result["items"]],
        pagination=result["pagination"],
    )


# -----------------------------
# AZIONI (POST con "action")
# -----------------------------
@router.post("")
def partner_action(
    response: Response,
    body: dict[str, Any] = Body(...),
    ledger: CommissionLedger = Depends(get_ledger),
):
    action = body.get("action")

    if action in ("create", "add_partner"):
        payload = parse_payload(PartnerCreate, body)
        partner = ledger.create_partner(payload.model_dump(exclude_unset=True))
        response.status_code = status.HTTP_201_CREATED
        return ok(_partner(partner), "Partner created successfully")

    if action in ("update", "update_partner"):
        payload = parse_payload(PartnerUpdateAction, body)
        patch = payload.model_dump(exclude_unset=True, exclude={"partner_id"})
        partner = ledger.update_partner(payload.partner_id, patch)
        return ok(_partner(partner), "Partner updated successfully")

    if action == "activate":
        payload = parse_payload(PartnerStatusAction, body)
        partner = ledger.activate_partner(payload.partner_id)
        return ok(_partner(partner), "Partner activated successfully")

    if action == "suspend":
        payload = parse_payload(PartnerStatusAction, body)
        partner = ledger.suspend_partner(payload.partner_id, payload.reason)
        return ok(_partner(partner), "Partner suspended successfully")

    if action == "bulk_update_status":
        payload = parse_payload(BulkStatusUpdate, body)
        updated = ledger.bulk_update_status(payload.partner_ids, payload.status)
        return ok({"updated_count": updated}, f"{updated} partners updated successfully")

    if action == "stats":
        return ok(ledger.partner_stats())

    logger.warning("Azione partner non valida: %r", action)
    raise ValidationError("Invalid action")


# -----------------------------
# DETTAGLIO / UPDATE / DELETE
# -----------------------------
@router.get("/{partner_id}")
def get_partner(
    partner_id: int,
    include_clients: bool = False,
    include_earnings: bool = False,
    include_sub_partners: bool = False,
    ledger: CommissionLedger = Depends(get_ledger),
):
    result = ledger.get_partner(
        partner_id,
        include_clients=include_clients,
        include_earnings=include_earnings,
        include_sub_partners=include_sub_partners,
    )

    data: dict[str, Any] = _partner(result["partner"]).model_dump(mode="json")

    if include_clients:
        data["clients"] = [ClientOut.model_validate(c) for c in result["clients"]]
        data["clients_count"] = result["clients_count"]

    if include_earnings:
        earnings = result["earnings"]
        data["earnings"] = {
            "recent_earnings": [EarningOut.model_validate(e) for e in earnings["recent_earnings"]],
            "total_earned": earnings["total_earned"],
            "pending_amount": earnings["pending_amount"],
            "paid_amount": earnings["paid_amount"],
        }

    if include_sub_partners:
        data["sub_partners"] = [_partner(p) for p in result["sub_partners"]]
        data["sub_partners_count"] = result["sub_partners_count"]

    return ok(data)


def _update(partner_id: int, payload: PartnerUpdate, ledger: CommissionLedger):
    partner = ledger.update_partner(partner_id, payload.model_dump(exclude_unset=True))
    return ok(_partner(partner), "Partner updated successfully")


@router.put("/{partner_id}")
def put_partner(partner_id: int, payload: PartnerUpdate, ledger: CommissionLedger = Depends(get_ledger)):
    return _update(partner_id, payload, ledger)


@router.patch("/{partner_id}")
def patch_partner(partner_id: int, payload: PartnerUpdate, ledger: CommissionLedger = Depends(get_ledger)):
    return _update(partner_id, payload, ledger)


@router.delete("/{partner_id}")
def delete_partner(
    partner_id: int,
    hard_delete: bool = False,
    ledger: CommissionLedger = Depends(get_ledger),
):
    partner = ledger.delete_partner(partner_id, hard=hard_delete)
    if hard_delete:
        return ok(message="Partner permanently deleted")
    return ok(_partner(partner), "Partner deactivated successfully")
