from decimal import Decimal

import pytest

from app.errors import ConflictError, NotFoundError, ValidationError
from models.partners import Partner, PartnerStatus, PartnerType, CommissionType


def _partner(ledger, email, **extra):
    data = {"name": email.split("@")[0].title(), "email": email}
    data.update(extra)
    return ledger.create_partner(data)


# -----------------------------
# CREATE
# -----------------------------
def test_create_partner_defaults(partner):
    assert partner.status == PartnerStatus.PENDING
    assert partner.partner_type == PartnerType.AFFILIATE
    assert partner.commission_type == CommissionType.PERCENTAGE
    assert partner.commission_rate == Decimal("15.00")
    assert partner.email == "partner@acme.example.com"
    assert partner.meta == {}


def test_create_partner_uses_default_rate(ledger):
    p = _partner(ledger, "default@example.com")
    assert p.commission_rate == Decimal("10.00")


def test_duplicate_email_is_case_insensitive(ledger, partner):
    with pytest.raises(ConflictError):
        _partner(ledger, "PARTNER@acme.example.com")


def test_percentage_rate_above_100_rejected(ledger):
    with pytest.raises(ValidationError):
        _partner(ledger, "greedy@example.com", commission_rate=Decimal("101"))


def test_fixed_rate_above_100_allowed(ledger):
    p = _partner(ledger, "fixed@example.com", commission_type="fixed", commission_rate=Decimal("150"))
    assert p.commission_type == CommissionType.FIXED
    assert p.commission_rate == Decimal("150.00")


def test_unknown_partner_type_rejected(ledger):
    with pytest.raises(ValidationError):
        _partner(ledger, "weird@example.com", partner_type="franchise")


def test_parent_must_exist(ledger):
    with pytest.raises(ValidationError):
        _partner(ledger, "child@example.com", parent_partner_id=9999)


# -----------------------------
# UPDATE / GERARCHIA
# -----------------------------
def test_update_partner_fields(ledger, partner):
    updated = ledger.update_partner(partner.id, {"name": "Acme Srl", "commission_rate": Decimal("20")})
    assert updated.name == "Acme Srl"
    assert updated.commission_rate == Decimal("20.00")


def test_update_ignores_unknown_fields(ledger, partner):
    updated = ledger.update_partner(partner.id, {"id": 999, "created_at": None, "name": "Acme"})
    assert updated.id == partner.id
    assert updated.created_at is not None


def test_update_email_conflict(ledger, partner):
    other = _partner(ledger, "other@example.com")
    with pytest.raises(ConflictError):
        ledger.update_partner(other.id, {"email": "partner@acme.example.com"})


def test_partner_cannot_be_its_own_parent(ledger, partner):
    with pytest.raises(ValidationError):
        ledger.update_partner(partner.id, {"parent_partner_id": partner.id})


def test_parent_cycle_rejected(ledger):
    top = _partner(ledger, "top@example.com")
    mid = _partner(ledger, "mid@example.com", parent_partner_id=top.id)
    leaf = _partner(ledger, "leaf@example.com", parent_partner_id=mid.id)

    with pytest.raises(ValidationError):
        ledger.update_partner(top.id, {"parent_partner_id": leaf.id})

    # staccare dal parent è sempre permesso
    assert ledger.update_partner(mid.id, {"parent_partner_id": None}).parent_partner_id is None


def test_update_missing_partner(ledger):
    with pytest.raises(NotFoundError):
        ledger.update_partner(12345, {"name": "Ghost"})


# -----------------------------
# STATUS
# -----------------------------
def test_activate_and_suspend(ledger, partner, clock):
    assert ledger.activate_partner(partner.id).status == PartnerStatus.ACTIVE

    suspended = ledger.suspend_partner(partner.id, "Fraud check")
    assert suspended.status == PartnerStatus.SUSPENDED
    assert suspended.meta["suspension_reason"] == "Fraud check"
    assert suspended.meta["suspended_at"] == clock().isoformat()


def test_suspend_merges_metadata(ledger):
    p = _partner(ledger, "meta@example.com", metadata={"source": "landing"})
    suspended = ledger.suspend_partner(p.id)
    assert suspended.meta["source"] == "landing"
    assert suspended.meta["suspension_reason"] == "No reason provided"


def test_bulk_update_status(ledger):
    ids = [_partner(ledger, f"p{i}@example.com").id for i in range(3)]
    assert ledger.bulk_update_status(ids[:2] + [9999], "active") == 2

    statuses = {p.id: p.status for p in ledger.db.query(Partner).all()}
    assert statuses[ids[0]] == PartnerStatus.ACTIVE
    assert statuses[ids[2]] == PartnerStatus.PENDING


@pytest.mark.parametrize("ids,status", [([], "active"), ([1], None), ([1], "deleted")])
def test_bulk_update_status_validation(ledger, partner, ids, status):
    with pytest.raises(ValidationError):
        ledger.bulk_update_status(ids, status)


# -----------------------------
# DELETE
# -----------------------------
def test_soft_delete_deactivates(ledger, partner):
    result = ledger.delete_partner(partner.id)
    assert result.status == PartnerStatus.INACTIVE
    assert "deactivated_at" in result.meta


def test_hard_delete_refused_with_clients(ledger, partner, referred):
    with pytest.raises(ValidationError) as exc:
        ledger.delete_partner(partner.id, hard=True)
    assert exc.value.extra == {"has_clients": True, "has_earnings": False, "has_sub_partners": False}
    assert ledger.db.get(Partner, partner.id) is not None


def test_hard_delete_refused_with_sub_partners(ledger, partner):
    _partner(ledger, "sub@example.com", parent_partner_id=partner.id)
    with pytest.raises(ValidationError) as exc:
        ledger.delete_partner(partner.id, hard=True)
    assert exc.value.extra["has_sub_partners"] is True


def test_hard_delete_empty_partner(ledger, partner):
    assert ledger.delete_partner(partner.id, hard=True) is None
    with pytest.raises(NotFoundError):
        ledger.get_partner(partner.id)


# -----------------------------
# READ
# -----------------------------
def test_list_partners_filters_and_search(ledger):
    _partner(ledger, "alpha@example.com", partner_type="agency", company_name="Alpha Media")
    beta = _partner(ledger, "beta@example.com", partner_type="reseller")
    ledger.activate_partner(beta.id)

    assert ledger.list_partners(status="all")["pagination"]["total"] == 2
    assert [p.email for p in ledger.list_partners(status="active")["items"]] == ["beta@example.com"]
    assert [p.email for p in ledger.list_partners(partner_type="agency")["items"]] == ["alpha@example.com"]
    assert [p.email for p in ledger.list_partners(search="MEDIA")["items"]] == ["alpha@example.com"]


def test_list_partners_pagination(ledger):
    for i in range(5):
        _partner(ledger, f"page{i}@example.com")

    result = ledger.list_partners(page=2, limit=2, sort_by="email", sort_order="asc")
    assert [p.email for p in result["items"]] == ["page2@example.com", "page3@example.com"]
    assert result["pagination"] == {"page": 2, "limit": 2, "total": 5, "total_pages": 3}


def test_list_partners_rejects_bad_sort(ledger):
    with pytest.raises(ValidationError):
        ledger.list_partners(sort_by="bank_info")


def test_get_partner_with_relations(ledger, partner, referred):
    child = _partner(ledger, "child@example.com", parent_partner_id=partner.id)
    _partner(ledger, "grandchild@example.com", parent_partner_id=child.id)
    ledger.create_earning(partner.id, Decimal("12.50"))

    result = ledger.get_partner(
        partner.id, include_clients=True, include_earnings=True, include_sub_partners=True
    )
    assert result["clients_count"] == 1
    assert result["earnings"]["total_earned"] == Decimal("12.50")
    assert result["earnings"]["pending_amount"] == Decimal("12.50")
    assert result["earnings"]["paid_amount"] == Decimal("0.00")
    # solo figli diretti
    assert [p.email for p in result["sub_partners"]] == ["child@example.com"]


def test_partner_stats(ledger):
    a = _partner(ledger, "a@example.com", partner_type="agency")
    _partner(ledger, "b@example.com")
    ledger.activate_partner(a.id)

    stats = ledger.partner_stats()
    assert stats["total"] == 2
    assert stats["by_status"] == {"active": 1, "pending": 1}
    assert stats["by_type"] == {"agency": 1, "affiliate": 1}
