# routers/partner_clients.py

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status

from app.config import settings
from app.deps import get_ledger, ok, parse_payload
from app.errors import ValidationError
from app.ledger import CommissionLedger
from schemas.partner_clients import (
    ClientCreate,
    ClientUpdate,
    RecordPayment,
    CancelClient,
    BulkImport,
    ClientOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/partners", tags=["Partner clients"])


def _client(c) -> ClientOut:
    return ClientOut.model_validate(c)


@router.get("/{partner_id}/clients")
def list_clients(
    partner_id: int,
    status_filter: Optional[str] = Query(None, alias="status"),
    subscription_plan: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    ledger: CommissionLedger = Depends(get_ledger),
):
    result = ledger.list_clients(
        partner_id,
        status=status_filter,
        subscription_plan=subscription_plan,
        search=search,
        page=page,
        limit=min(limit, settings.max_page_size),
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ok(
        [_client(c) for c in result["items"]],
        summary=result["summary"],
        pagination=result["pagination"],
    )


@router.post("/{partner_id}/clients")
def client_action(
    partner_id: int,
    response: Response,
    body: dict[str, Any] = Body(...),
    ledger: CommissionLedger = Depends(get_ledger),
):
    action = body.get("action")

    if action in ("create", "add_client"):
        payload = parse_payload(ClientCreate, body)
        client = ledger.create_client(partner_id, payload.model_dump(exclude_unset=True))
        response.status_code = status.HTTP_201_CREATED
        return ok(_client(client), "Client added successfully")

    if action in ("update", "update_client"):
        payload = parse_payload(ClientUpdate, body)
        patch = payload.model_dump(exclude_unset=True, exclude={"client_id"})
        client = ledger.update_client(partner_id, payload.client_id, patch)
        return ok(_client(client), "Client updated successfully")

    if action == "record_payment":
        payload = parse_payload(RecordPayment, body)
        result = ledger.record_payment(
            partner_id,
            payload.client_id,
            payload.amount,
            payment_date=payload.payment_date,
            description=payload.description,
        )
        return ok(
            {"client": _client(result["client"]), "payment": result["payment"]},
            "Payment recorded successfully",
        )

    if action in ("cancel", "cancel_subscription"):
        payload = parse_payload(CancelClient, body)
        client = ledger.cancel_client(partner_id, payload.client_id, payload.reason)
        return ok(_client(client), "Subscription cancelled")

    if action == "bulk_import":
        payload = parse_payload(BulkImport, body)
        results = ledger.bulk_import_clients(partner_id, payload.clients)
        return ok(
            results,
            f"Imported {results['success']} clients, {results['failed']} failed",
        )

    logger.warning("Azione clienti non valida: %r (partner_id=%s)", action, partner_id)
    raise ValidationError("Invalid action")


@router.delete("/{partner_id}/clients")
def delete_client(
    partner_id: int,
    client_id: Optional[int] = None,
    ledger: CommissionLedger = Depends(get_ledger),
):
    if client_id is None:
        raise ValidationError("client_id is required")
    ledger.delete_client(partner_id, client_id)
    return ok(message="Client removed successfully")
