# tests/test_quotes.py
from __future__ import annotations

from datetime import timedelta

from fleetdesk.extensions import db
from fleetdesk.models import Quote, QuoteStatus, utc_today
from fleetdesk.services import quotes


def _sent_quote(actor, payload):
    created = quotes.create_quote(actor, payload)
    assert created.success, created.error
    sent = quotes.send_quote(actor, created.data["id"])
    assert sent.success, sent.error
    return created.data["id"]


def test_create_quote_computes_totals_and_number(dispatcher, customer, quote_payload):
    result = quotes.create_quote(dispatcher, quote_payload())

    assert result.success
    assert result.status_code == 200
    data = result.data
    assert data["status"] == "draft"
    assert data["quote_number"] == f"QT-ACM{customer.id}-0001"
    assert (data["subtotal"], data["tax_amount"], data["total_amount"]) == (1251.0, 187.65, 1438.65)
    assert data["valid_until"] == (utc_today() + timedelta(days=30)).isoformat()
    assert [i["line_total"] for i in data["items"]] == [1000.0, 251.0]


def test_second_quote_increments_number(dispatcher, customer, quote_payload):
    quotes.create_quote(dispatcher, quote_payload())
    second = quotes.create_quote(dispatcher, quote_payload())
    assert second.data["quote_number"] == f"QT-ACM{customer.id}-0002"


def test_create_quote_rejects_bad_payload(dispatcher, quote_payload):
    result = quotes.create_quote(dispatcher, quote_payload(items=[]))
    assert not result.success
    assert result.error == "Invalid quote payload"
    assert result.status_code == 400


def test_fractional_quantity_keeps_line_and_totals_consistent(dispatcher, quote_payload):
    items = [{"description": "Part load", "quantity": 1.55, "unit_price": 100}]
    result = quotes.create_quote(dispatcher, quote_payload(items=items, tax_rate=0))
    assert result.success, result.error

    data = result.data
    assert data["items"][0]["quantity"] == 1.55
    assert data["items"][0]["line_total"] == 155.0
    assert data["subtotal"] == 155.0
    assert quotes.quote_totals_report(dispatcher, data["id"]).data["in_sync"] is True


def test_sub_cent_line_values_rejected(dispatcher, quote_payload):
    for item in (
        {"description": "Pallet", "quantity": 0.004, "unit_price": 100},
        {"description": "Pallet", "quantity": 1.555, "unit_price": 100},
        {"description": "Pallet", "quantity": 1, "unit_price": 10.001},
    ):
        result = quotes.create_quote(dispatcher, quote_payload(items=[item]))
        assert result.error == "Invalid quote payload"
        assert result.status_code == 400
    assert Quote.query.count() == 0


def test_tax_rate_limited_to_two_decimals(dispatcher, quote_payload):
    items = [{"description": "Linehaul", "quantity": 1, "unit_price": 10000}]

    finer = quotes.create_quote(dispatcher, quote_payload(items=items, tax_rate=7.125))
    assert finer.error == "Invalid quote payload"

    ok = quotes.create_quote(dispatcher, quote_payload(items=items, tax_rate=7.13))
    assert ok.data["tax_amount"] == 713.0
    assert quotes.get_quote(dispatcher, ok.data["id"]).data["totals_check"]["in_sync"] is True


def test_driver_cannot_create_quote(driver_user, quote_payload):
    result = quotes.create_quote(driver_user, quote_payload())
    assert result.error == "Insufficient permissions"
    assert result.status_code == 403


def test_anonymous_actor_is_rejected(quote_payload):
    result = quotes.create_quote(None, quote_payload())
    assert result.error == "User not authenticated"
    assert result.status_code == 401


def test_customer_from_another_company_is_not_found(dispatcher, make_company, make_customer, quote_payload):
    other = make_company("Other Transport")
    foreign = make_customer("Foreign Buyer", company_id=other.id, email="x@foreign.test")

    result = quotes.create_quote(dispatcher, quote_payload(customer_id=foreign.id))
    assert result.error == "Customer not found"
    assert result.status_code == 404


def test_inactive_customer_rejected(dispatcher, make_customer, quote_payload):
    dormant = make_customer("Dormant Ltd", email="d@dormant.test", is_active=False)
    result = quotes.create_quote(dispatcher, quote_payload(customer_id=dormant.id))
    assert result.error == "Customer is inactive"
    assert result.status_code == 409


def test_send_only_once(dispatcher, quote_payload):
    quote_id = _sent_quote(dispatcher, quote_payload())

    again = quotes.send_quote(dispatcher, quote_id)
    assert again.error == "Only draft quotes can be sent"
    assert again.status_code == 409


def test_accept_then_reject_refused(dispatcher, quote_payload):
    quote_id = _sent_quote(dispatcher, quote_payload())

    accepted = quotes.accept_quote(dispatcher, quote_id)
    assert accepted.success
    assert accepted.data["status"] == "accepted"
    assert accepted.data["accepted_at"] is not None

    rejected = quotes.reject_quote(dispatcher, quote_id, "too late")
    assert rejected.error == "Only sent quotes can be rejected"


def test_customer_portal_login_can_accept(dispatcher, portal_user, quote_payload):
    quote_id = _sent_quote(dispatcher, quote_payload())

    result = quotes.accept_quote(portal_user, quote_id)
    assert result.success, result.error
    assert result.data["status"] == "accepted"


def test_matching_email_alone_grants_nothing(dispatcher, make_profile, quote_payload):
    quote_id = _sent_quote(dispatcher, quote_payload())
    # same address as the customer record, but not a portal login
    lookalike = make_profile("dispatcher", email="Buyer@AcmeMining.test", company_id=None)

    result = quotes.accept_quote(lookalike, quote_id)
    assert result.error == "Quote not found"
    assert result.status_code == 404
    assert db.session.get(Quote, quote_id).status == QuoteStatus.SENT


def test_portal_login_limited_to_own_sent_quotes(dispatcher, make_customer, make_profile, portal_user, quote_payload):
    other = make_customer("Kalahari Salt", email="orders@kalaharisalt.co.za")
    theirs = _sent_quote(dispatcher, quote_payload(customer_id=other.id))
    draft = quotes.create_quote(dispatcher, quote_payload()).data["id"]

    assert quotes.accept_quote(portal_user, theirs).error == "Quote not found"
    assert quotes.reject_quote(portal_user, draft, "no").error == "Quote not found"

    # a customer-role profile with no customer link is refused outright
    unlinked = make_profile("customer", email="loose@acmemining.co.za")
    result = quotes.accept_quote(unlinked, theirs)
    assert result.error == "Customer portal access required"
    assert result.status_code == 403


def test_staff_of_another_company_cannot_see_quote(dispatcher, make_company, make_profile, quote_payload):
    quote_id = _sent_quote(dispatcher, quote_payload())
    other = make_company("Other Transport")
    outsider = make_profile("company_admin", company_id=other.id)

    result = quotes.accept_quote(outsider, quote_id)
    assert result.error == "Quote not found"
    assert result.status_code == 404


def test_expired_quote_cannot_be_accepted(dispatcher, quote_payload):
    yesterday = utc_today() - timedelta(days=1)
    quote_id = _sent_quote(dispatcher, quote_payload(valid_until=yesterday.isoformat()))

    got = quotes.get_quote(dispatcher, quote_id)
    assert got.data["status"] == "sent"
    assert got.data["display_status"] == "expired"

    result = quotes.accept_quote(dispatcher, quote_id)
    assert result.error == "Quote has expired"
    assert db.session.get(Quote, quote_id).status == QuoteStatus.SENT


def test_list_filters_on_display_status(dispatcher, quote_payload):
    yesterday = utc_today() - timedelta(days=1)
    stale_id = _sent_quote(dispatcher, quote_payload(valid_until=yesterday.isoformat()))
    fresh_id = _sent_quote(dispatcher, quote_payload())

    expired = quotes.list_quotes(dispatcher, status="expired")
    assert [q["id"] for q in expired.data] == [stale_id]

    sent = quotes.list_quotes(dispatcher, status="sent")
    assert [q["id"] for q in sent.data] == [fresh_id]

    bad = quotes.list_quotes(dispatcher, status="bogus")
    assert bad.error == "Invalid quote status"


def test_reject_appends_reason(dispatcher, quote_payload):
    quote_id = _sent_quote(dispatcher, quote_payload(notes="Rate valid for one trip"))

    result = quotes.reject_quote(dispatcher, quote_id, "Found a cheaper carrier")
    assert result.success
    assert result.data["status"] == "rejected"
    assert result.data["notes"].endswith("Rejection reason: Found a cheaper carrier")


def test_delete_rules(dispatcher, manager, quote_payload):
    draft = quotes.create_quote(dispatcher, quote_payload()).data
    sent_id = _sent_quote(dispatcher, quote_payload())

    assert quotes.delete_quote(dispatcher, draft["id"]).error == "Insufficient permissions"
    assert quotes.delete_quote(manager, sent_id).error == "Can only delete draft quotes"

    ok = quotes.delete_quote(manager, draft["id"])
    assert ok.success
    assert db.session.get(Quote, draft["id"]) is None


def test_changing_customer_on_draft_reissues_number(dispatcher, make_customer, quote_payload):
    draft = quotes.create_quote(dispatcher, quote_payload()).data
    bantu = make_customer("Bantu Freight", email="ops@bantu.test")

    result = quotes.update_quote(dispatcher, draft["id"], quote_payload(customer_id=bantu.id))
    assert result.success, result.error
    assert result.data["quote_number"] == f"QT-BAN{bantu.id}-0001"
    assert result.data["customer_id"] == bantu.id


def test_changing_customer_on_sent_quote_refused(dispatcher, make_customer, quote_payload):
    quote_id = _sent_quote(dispatcher, quote_payload())
    bantu = make_customer("Bantu Freight", email="ops@bantu.test")

    result = quotes.update_quote(dispatcher, quote_id, quote_payload(customer_id=bantu.id))
    assert result.error == "Customer can only be changed on draft quotes"


def test_update_recomputes_totals(dispatcher, quote_payload):
    draft = quotes.create_quote(dispatcher, quote_payload()).data
    payload = quote_payload(tax_rate=0, items=[{"description": "Short haul", "quantity": 1, "unit_price": 400}])

    result = quotes.update_quote(dispatcher, draft["id"], payload)
    assert result.data["total_amount"] == 400.0
    assert len(result.data["items"]) == 1


def test_accepted_quote_is_not_editable(dispatcher, quote_payload):
    quote_id = _sent_quote(dispatcher, quote_payload())
    quotes.accept_quote(dispatcher, quote_id)

    result = quotes.update_quote(dispatcher, quote_id, quote_payload())
    assert result.error == "Cannot edit quote with current status"


def test_duplicate_creates_fresh_draft(dispatcher, customer, quote_payload):
    quote_id = _sent_quote(dispatcher, quote_payload())

    result = quotes.duplicate_quote(dispatcher, quote_id)
    assert result.success
    assert result.data["status"] == "draft"
    assert result.data["quote_number"] == f"QT-ACM{customer.id}-0002"
    assert result.data["total_amount"] == 1438.65
    assert len(result.data["items"]) == 2


def test_totals_report_and_sync(dispatcher, quote_payload):
    quote_id = quotes.create_quote(dispatcher, quote_payload()).data["id"]
    quote = db.session.get(Quote, quote_id)
    quote.total_amount = 2000
    db.session.commit()

    report = quotes.quote_totals_report(dispatcher, quote_id)
    assert report.data["in_sync"] is False
    assert report.data["mismatched_fields"] == ["total_amount"]

    synced = quotes.sync_quote_totals(dispatcher, quote_id)
    assert synced.message == "Quote totals updated"
    assert synced.data["in_sync"] is True
    assert db.session.get(Quote, quote_id).total_amount == 1438.65


def test_pdf_export(dispatcher, quote_payload):
    quote_id = quotes.create_quote(dispatcher, quote_payload()).data["id"]

    result = quotes.export_quote_pdf(dispatcher, quote_id)
    assert result.success
    assert result.data["filename"].endswith("-0001.pdf")
    assert result.data["content"].startswith(b"%PDF")
