from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from app.errors import NotFoundError, ValidationError


def _at(clock, ledger, partner, when, amount="10.00", status=None):
    clock.set(*when)
    e = ledger.create_earning(partner.id, Decimal(amount), status=status)
    return e


# -----------------------------
# SUMMARY
# -----------------------------
def test_summary_amounts_add_up(ledger, partner, clock):
    a = _at(clock, ledger, partner, (2026, 2, 10), "10.00")
    b = _at(clock, ledger, partner, (2026, 3, 1), "20.50")
    c = _at(clock, ledger, partner, (2026, 3, 2), "5.25")
    d = _at(clock, ledger, partner, (2026, 3, 3), "7.00")
    _at(clock, ledger, partner, (2026, 3, 4), "1.11")

    ledger.approve(partner.id, a.id)
    ledger.mark_paid(partner.id, b.id)
    ledger.cancel(partner.id, c.id)
    ledger.hold(partner.id, d.id)

    clock.set(2026, 3, 20)
    s = ledger.summary(partner.id)

    parts = [s[f"{st}_amount"] for st in ("pending", "approved", "paid", "cancelled", "on_hold")]
    assert sum(parts) == s["total_earnings"] == Decimal("43.86")
    assert s["approved_amount"] == Decimal("10.00")
    assert s["paid_amount"] == Decimal("20.50")
    assert s["cancelled_amount"] == Decimal("5.25")
    assert s["on_hold_amount"] == Decimal("7.00")
    assert s["pending_amount"] == Decimal("1.11")
    assert s["this_month"] == Decimal("33.86")
    assert s["total_transactions"] == 5
    assert s["pending_transactions"] == 1
    assert s["by_status"] == {"pending": 1, "approved": 1, "paid": 1, "cancelled": 1, "on_hold": 1}


def test_summary_empty_partner(ledger, partner):
    s = ledger.summary(partner.id)
    assert s["total_earnings"] == Decimal("0.00")
    assert s["total_transactions"] == 0
    assert s["by_status"] == {}


def test_summary_unknown_partner(ledger):
    with pytest.raises(NotFoundError):
        ledger.summary(999)


# -----------------------------
# LIST EARNINGS
# -----------------------------
def test_list_earnings_totals_follow_filters(ledger, partner, clock):
    _at(clock, ledger, partner, (2026, 1, 5), "100.00")
    jan = _at(clock, ledger, partner, (2026, 1, 31, 23, 59, 59), "50.00")
    _at(clock, ledger, partner, (2026, 2, 1), "25.00")
    ledger.mark_paid(partner.id, jan.id)

    result = ledger.list_earnings(partner.id, date_from=date(2026, 1, 1), date_to=date(2026, 1, 31))
    assert result["pagination"]["total"] == 2
    assert result["totals"] == {
        "total_amount": Decimal("150.00"),
        "pending": Decimal("100.00"),
        "paid": Decimal("50.00"),
    }

    paid_only = ledger.list_earnings(partner.id, status="paid")
    assert [e.id for e in paid_only["items"]] == [jan.id]
    assert paid_only["totals"]["total_amount"] == Decimal("50.00")


def test_list_earnings_pagination_and_sort(ledger, partner, clock):
    for day, amount in ((1, "3.00"), (2, "1.00"), (3, "2.00")):
        _at(clock, ledger, partner, (2026, 3, day), amount)

    newest_first = ledger.list_earnings(partner.id, limit=2)
    assert [e.amount for e in newest_first["items"]] == [Decimal("2.00"), Decimal("1.00")]
    assert newest_first["pagination"]["total_pages"] == 2
    # i totali non dipendono dalla pagina
    assert newest_first["totals"]["total_amount"] == Decimal("6.00")

    by_amount = ledger.list_earnings(partner.id, sort_by="amount", sort_order="asc")
    assert [e.amount for e in by_amount["items"]] == [Decimal("1.00"), Decimal("2.00"), Decimal("3.00")]


def test_list_earnings_by_client(ledger, partner, referred):
    ledger.record_payment(partner.id, referred.id, Decimal("100"))
    ledger.create_earning(partner.id, Decimal("5"))

    result = ledger.list_earnings(partner.id, client_id=referred.id)
    assert result["pagination"]["total"] == 1
    assert result["totals"]["total_amount"] == Decimal("15.00")


def test_list_earnings_limit_is_bounded(ledger, partner):
    with pytest.raises(ValidationError):
        ledger.list_earnings(partner.id, limit=10_000)


# -----------------------------
# MONTHLY REPORT
# -----------------------------
def test_monthly_report_month_boundaries(ledger, partner, clock):
    _at(clock, ledger, partner, (2026, 2, 28, 23, 59, 59, 999000), "1.00")
    first = _at(clock, ledger, partner, (2026, 3, 1, 0, 0, 0), "2.00")
    last = _at(clock, ledger, partner, (2026, 3, 31, 23, 59, 59, 500000), "4.00")
    _at(clock, ledger, partner, (2026, 4, 1, 0, 0, 0), "8.00")
    ledger.mark_paid(partner.id, last.id)

    report = ledger.monthly_report(partner.id, 2026, 3)

    assert [e.id for e in report["transactions"]] == [first.id, last.id]
    assert report["period"]["year"] == 2026
    assert report["period"]["month"] == 3
    assert report["period"]["start_date"] == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert report["period"]["end_date"] == datetime(2026, 3, 31, 23, 59, 59, tzinfo=timezone.utc)
    assert report["summary"] == {
        "total_transactions": 2,
        "total_amount": Decimal("6.00"),
        "pending": Decimal("2.00"),
        "approved": Decimal("0.00"),
        "paid": Decimal("4.00"),
        "cancelled": Decimal("0.00"),
        "on_hold": Decimal("0.00"),
    }
    assert report["by_day"] == {
        "1": {"count": 1, "amount": Decimal("2.00")},
        "31": {"count": 1, "amount": Decimal("4.00")},
    }


def test_monthly_report_december_rolls_over(ledger, partner, clock):
    _at(clock, ledger, partner, (2025, 12, 31, 22, 0), "3.00")
    _at(clock, ledger, partner, (2026, 1, 1, 0, 0), "9.00")

    report = ledger.monthly_report(partner.id, 2025, 12)
    assert report["summary"]["total_amount"] == Decimal("3.00")


def test_monthly_report_defaults_to_current_month(ledger, partner, clock):
    _at(clock, ledger, partner, (2026, 3, 10), "3.00")
    clock.set(2026, 3, 20)

    report = ledger.monthly_report(partner.id)
    assert (report["period"]["year"], report["period"]["month"]) == (2026, 3)
    assert report["summary"]["total_transactions"] == 1


@pytest.mark.parametrize("month", [0, 13, -1])
def test_monthly_report_rejects_bad_month(ledger, partner, month):
    with pytest.raises(ValidationError):
        ledger.monthly_report(partner.id, 2026, month)
