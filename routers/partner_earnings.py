# routers/partner_earnings.py

import logging
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status

from app.config import settings
from app.deps import get_ledger, ok, parse_payload
from app.errors import ValidationError
from app.ledger import CommissionLedger
from schemas.partners import PartnerOut
from schemas.partner_earnings import (
    EarningCreate,
    EarningAction,
    MarkPaid,
    BulkPay,
    MonthlyReportRequest,
    EarningOut,
    EarningEventOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/partners", tags=["Partner earnings"])


def _earning(e) -> EarningOut:
    return EarningOut.model_validate(e)


@router.get("/{partner_id}/earnings")
def list_earnings(
    partner_id: int,
    summary: bool = False,
    status_filter: Optional[str] = Query(None, alias="status"),
    client_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    ledger: CommissionLedger = Depends(get_ledger),
):
    # -----------------------------
    # Solo riepilogo
    # -----------------------------
    if summary:
        partner = ledger.get_partner_or_404(partner_id)
        return ok({
            "partner": PartnerOut.model_validate(partner),
            "summary": ledger.summary(partner_id),
        })

    result = ledger.list_earnings(
        partner_id,
        status=status_filter,
        client_id=client_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=min(limit, settings.max_page_size),
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ok(
        [_earning(e) for e in result["items"]],
        totals=result["totals"],
        pagination=result["pagination"],
    )


@router.post("/{partner_id}/earnings")
def earning_action(
    partner_id: int,
    response: Response,
    body: dict[str, Any] = Body(...),
    ledger: CommissionLedger = Depends(get_ledger),
):
    action = body.get("action")

    if action in ("create", "add_earning"):
        payload = parse_payload(EarningCreate, body)
        earning = ledger.create_earning(partner_id, **payload.model_dump(exclude_unset=True))
        response.status_code = status.HTTP_201_CREATED
        return ok(_earning(earning), "Earning created successfully")

    if action == "approve":
        payload = parse_payload(EarningAction, body)
        earning = ledger.approve(partner_id, payload.earning_id, payload.notes)
        return ok(_earning(earning), "Earning approved")

    if action in ("mark_paid", "pay"):
        payload = parse_payload(MarkPaid, body)
        earning = ledger.mark_paid(
            partner_id,
            payload.earning_id,
            payment_method=payload.payment_method,
            payment_reference=payload.payment_reference,
            paid_date=payload.paid_date,
            notes=payload.notes,
        )
        return ok(_earning(earning), "Earning marked as paid")

    if action == "bulk_pay":
        payload = parse_payload(BulkPay, body)
        result = ledger.bulk_pay(
            partner_id,
            payload.earning_ids,
            payment_method=payload.payment_method,
            payment_reference=payload.payment_reference,
            paid_date=payload.paid_date,
        )
        return ok(
            {
                "paid_count": result["paid_count"],
                "total_paid": result["total_paid"],
                "paid_ids": result["paid_ids"],
                "skipped_ids": result["skipped_ids"],
                "earnings": [_earning(e) for e in result["earnings"]],
            },
            f"{result['paid_count']} earnings marked as paid",
        )

    if action == "cancel":
        payload = parse_payload(EarningAction, body)
        earning = ledger.cancel(partner_id, payload.earning_id, payload.reason)
        return ok(_earning(earning), "Earning cancelled")

    if action in ("hold", "put_on_hold"):
        payload = parse_payload(EarningAction, body)
        earning = ledger.hold(partner_id, payload.earning_id, payload.reason)
        return ok(_earning(earning), "Earning put on hold")

    if action == "release":
        payload = parse_payload(EarningAction, body)
        earning = ledger.release(partner_id, payload.earning_id, payload.notes)
        return ok(_earning(earning), "Earning released")

    if action == "monthly_report":
        payload = parse_payload(MonthlyReportRequest, body)
        report = ledger.monthly_report(partner_id, payload.year, payload.month)
        report["transactions"] = [_earning(e) for e in report["transactions"]]
        return ok(report)

    if action == "history":
        payload = parse_payload(EarningAction, body)
        events = ledger.earning_history(partner_id, payload.earning_id)
        return ok([EarningEventOut.model_validate(ev) for ev in events])

    logger.warning("Azione earnings non valida: %r (partner_id=%s)", action, partner_id)
    raise ValidationError("Invalid action")
