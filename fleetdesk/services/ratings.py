# fleetdesk/services/ratings.py
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app

from ..constants import MANAGEMENT_ROLES, RATING_ASPECTS, STAFF_ROLES
from ..errors import NotFoundError, StateConflictError
from ..extensions import db
from ..models import CustomerRating, Load, LoadStatus, utcnow_naive
from ..schemas import RatingIn, RatingResponseIn, parse_payload
from ..utils.guards import resolve_customer, resolve_tenant
from ..utils.results import ActionResult, action
from .lookups import get_owned
from .money import CENT


def _average(total: int, count: int) -> float:
    if not count:
        return 0.0
    return float((Decimal(total) / Decimal(count)).quantize(CENT, rounding=ROUND_HALF_UP))


# =========================================================
# Customer side (portal)
# =========================================================
@action("Submit rating", "Failed to submit rating")
def submit_rating(actor, payload) -> ActionResult:
    portal = resolve_customer(actor)
    data = parse_payload(RatingIn, payload, "A rating between 1 and 5 is required")

    load = None
    if data.load_id is not None:
        load = Load.query.filter_by(id=data.load_id, customer_id=portal.customer_id).first()
        if load is None:
            raise NotFoundError("Load not found or does not belong to customer")
        if load.status != LoadStatus.DELIVERED:
            raise StateConflictError("Only delivered loads can be rated")
        if CustomerRating.query.filter_by(customer_id=portal.customer_id, load_id=load.id).first() is not None:
            raise StateConflictError("Rating already submitted for this load")

    aspects = data.service_aspects.model_dump(exclude_none=True) if data.service_aspects else {}
    rating = CustomerRating(
        company_id=portal.company_id,
        customer_id=portal.customer_id,
        load_id=load.id if load else None,
        rating=data.rating,
        feedback=data.feedback,
        service_aspects=aspects,
        is_anonymous=data.is_anonymous,
    )
    db.session.add(rating)
    db.session.commit()

    current_app.logger.info("Customer %s rated %s (load=%s)", portal.customer_id, data.rating, rating.load_id)
    suffix = f" for Load {load.load_number}" if load else ""
    return ActionResult.ok(rating.to_dict(for_staff=False), message=f"Rating submitted successfully{suffix}")


@action("List my ratings", "Failed to fetch ratings")
def list_my_ratings(actor) -> ActionResult:
    portal = resolve_customer(actor)
    ratings = (
        CustomerRating.query.filter_by(customer_id=portal.customer_id)
        .order_by(CustomerRating.created_at.desc(), CustomerRating.id.desc())
        .all()
    )
    return ActionResult.ok([r.to_dict(for_staff=False) for r in ratings])


# =========================================================
# Company side
# =========================================================
@action("List ratings", "Failed to fetch ratings")
def list_ratings(
    actor,
    customer_id=None,
    load_id=None,
    rating: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)

    query = CustomerRating.query.filter(CustomerRating.company_id == ctx.company_id)
    if customer_id:
        query = query.filter(CustomerRating.customer_id == int(customer_id))
    if load_id:
        query = query.filter(CustomerRating.load_id == int(load_id))
    if rating:
        query = query.filter(CustomerRating.rating == int(rating))
    if date_from:
        query = query.filter(CustomerRating.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.filter(CustomerRating.created_at <= datetime.combine(date_to, time.max))

    ratings = query.order_by(CustomerRating.created_at.desc(), CustomerRating.id.desc()).all()
    return ActionResult.ok([r.to_dict() for r in ratings])


@action("Rating stats", "Failed to fetch rating statistics")
def rating_stats(actor) -> ActionResult:
    """
    Company-wide satisfaction summary:
      - average_rating: mean of all ratings, two decimals
      - rating_distribution: count per score 1..5
      - service_aspects: mean per aspect over ratings that scored it
      - monthly_trend: mean rating per YYYY-MM of submission
    """
    ctx = resolve_tenant(actor, STAFF_ROLES)
    ratings = CustomerRating.query.filter_by(company_id=ctx.company_id).all()

    distribution = {score: 0 for score in range(1, 6)}
    aspect_sums = {name: [0, 0] for name in RATING_ASPECTS}
    months = defaultdict(lambda: [0, 0])

    for r in ratings:
        distribution[r.rating] = distribution.get(r.rating, 0) + 1
        for name, score in (r.service_aspects or {}).items():
            if name in aspect_sums and score:
                aspect_sums[name][0] += score
                aspect_sums[name][1] += 1
        bucket = months[r.created_at.strftime("%Y-%m")]
        bucket[0] += r.rating
        bucket[1] += 1

    return ActionResult.ok(
        {
            "total_ratings": len(ratings),
            "average_rating": _average(sum(r.rating for r in ratings), len(ratings)),
            "rating_distribution": distribution,
            "service_aspects": {name: _average(*pair) for name, pair in aspect_sums.items()},
            "monthly_trend": {month: _average(*pair) for month, pair in sorted(months.items())},
        }
    )


@action("Respond to rating", "Failed to update rating response")
def respond_to_rating(actor, rating_id, payload) -> ActionResult:
    ctx = resolve_tenant(actor, MANAGEMENT_ROLES)
    data = parse_payload(RatingResponseIn, payload, "Response text is required")
    rating = get_owned(CustomerRating, ctx, rating_id, "Rating not found")

    rating.company_response = data.response
    rating.responded_at = utcnow_naive()
    rating.responded_by_id = ctx.user_id
    db.session.commit()

    return ActionResult.ok(rating.to_dict(), message="Response added to customer rating")
