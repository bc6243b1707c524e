# fleetdesk/services/lookups.py
from __future__ import annotations

from ..errors import NotFoundError
from ..utils.guards import TenantContext


def get_owned(model, ctx: TenantContext, obj_id, message: str):
    """Fetch a row by id inside the caller's company, or raise NotFoundError."""
    if obj_id is None:
        raise NotFoundError(message)
    try:
        obj_id = int(obj_id)
    except (TypeError, ValueError):
        raise NotFoundError(message) from None

    obj = model.query.filter_by(id=obj_id, company_id=ctx.company_id).first()
    if obj is None:
        raise NotFoundError(message)
    return obj


def owned_or_none(model, ctx: TenantContext, obj_id):
    if obj_id is None:
        return None
    return model.query.filter_by(id=obj_id, company_id=ctx.company_id).first()
