# fleetdesk/services/documents.py
from __future__ import annotations

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

from ..constants import DOCUMENT_MIME_TYPES, DOCUMENT_TYPES, MANAGEMENT_ROLES, STAFF_ROLES
from ..errors import AuthorizationError, DependencyError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Document, Invoice, Load, Quote, utcnow_naive
from ..schemas import DocumentIn, DocumentUpdateIn, parse_payload
from ..utils.guards import TenantContext, resolve_tenant
from ..utils.results import ActionResult, action
from .features import feature_enabled
from .lookups import get_owned, owned_or_none
from .storage import delete_bytes, load_bytes, store_bytes

DOCUMENT_MAX_BYTES = 10 * 1024 * 1024

_LINKS = (
    ("load_id", Load, "Invalid load selected"),
    ("invoice_id", Invoice, "Invalid invoice selected"),
    ("quote_id", Quote, "Invalid quote selected"),
)


def _documents_context(actor, roles) -> TenantContext:
    ctx = resolve_tenant(actor, roles)
    if not feature_enabled(ctx.company_id, "document_management"):
        raise AuthorizationError("Document management is not enabled for this company")
    return ctx


def _check_links(ctx: TenantContext, values: dict) -> None:
    for field, model, message in _LINKS:
        if values.get(field) is not None and owned_or_none(model, ctx, values[field]) is None:
            raise ValidationError(message)


def _discard_file(storage_key: str | None) -> None:
    if not storage_key:
        return
    try:
        delete_bytes(storage_key)
    except OSError:
        current_app.logger.exception("Could not remove document file %s", storage_key)


# =========================================================
# Upload / update / delete
# =========================================================
@action("Upload document", "Failed to upload document")
def upload_document(actor, content: bytes, filename: str | None, content_type: str | None, payload) -> ActionResult:
    ctx = _documents_context(actor, STAFF_ROLES)
    data = parse_payload(DocumentIn, payload, "Invalid document data")

    if not content or not filename:
        raise ValidationError("No file provided")
    max_bytes = int(current_app.config.get("DOCUMENT_MAX_BYTES", DOCUMENT_MAX_BYTES))
    if len(content) > max_bytes:
        raise ValidationError("File size exceeds 10MB limit")

    mime = (content_type or "").split(";")[0].strip().lower()
    if mime not in DOCUMENT_MIME_TYPES:
        raise ValidationError("File type not supported")

    values = data.model_dump()
    _check_links(ctx, values)

    ts = utcnow_naive().strftime("%Y%m%dT%H%M%S%f")
    safe_name = secure_filename(filename) or "document"
    key = f"documents/{ctx.company_id}/{ts}_{safe_name}"
    try:
        stored = store_bytes(key, content)
    except OSError as exc:
        current_app.logger.exception("Document write failed for company %s", ctx.company_id)
        raise DependencyError("Failed to store document") from exc

    document = Document(
        company_id=ctx.company_id,
        file_name=filename,
        storage_key=stored.storage_key,
        file_size=stored.size,
        sha256=stored.sha256,
        mime_type=mime,
        uploaded_by_id=ctx.user_id,
        **values,
    )
    db.session.add(document)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        _discard_file(stored.storage_key)
        raise

    current_app.logger.info("Document %s uploaded to company %s", document.id, ctx.company_id)
    return ActionResult.ok(document.to_dict(), message=f"Document {filename} uploaded successfully")


@action("Update document", "Failed to update document")
def update_document(actor, document_id, payload) -> ActionResult:
    ctx = _documents_context(actor, MANAGEMENT_ROLES)
    data = parse_payload(DocumentUpdateIn, payload, "Invalid document data")
    document = get_owned(Document, ctx, document_id, "Document not found")

    changes = data.model_dump(exclude_unset=True)
    _check_links(ctx, changes)

    for name, value in changes.items():
        if name == "document_type" and value is None:
            continue
        setattr(document, name, value)

    db.session.commit()
    return ActionResult.ok(document.to_dict(), message=f"Document {document.file_name} updated successfully")


@action("Delete document", "Failed to delete document")
def delete_document(actor, document_id) -> ActionResult:
    ctx = _documents_context(actor, MANAGEMENT_ROLES)
    document = get_owned(Document, ctx, document_id, "Document not found")

    name, storage_key = document.file_name, document.storage_key
    db.session.delete(document)
    db.session.commit()
    _discard_file(storage_key)

    return ActionResult.ok({"id": int(document_id)}, message=f"Document {name} deleted successfully")


# =========================================================
# Reads
# =========================================================
@action("List documents", "Failed to fetch documents")
def list_documents(actor, document_type: str | None = None, load_id=None, invoice_id=None, quote_id=None) -> ActionResult:
    ctx = _documents_context(actor, STAFF_ROLES)

    query = Document.query.filter(Document.company_id == ctx.company_id)
    if document_type:
        if document_type not in DOCUMENT_TYPES:
            raise ValidationError("Invalid document type")
        query = query.filter(Document.document_type == document_type)
    if load_id:
        query = query.filter(Document.load_id == int(load_id))
    if invoice_id:
        query = query.filter(Document.invoice_id == int(invoice_id))
    if quote_id:
        query = query.filter(Document.quote_id == int(quote_id))

    documents = query.order_by(Document.created_at.desc(), Document.id.desc()).all()
    return ActionResult.ok([d.to_dict() for d in documents])


@action("Download document", "Failed to load document")
def download_document(actor, document_id) -> ActionResult:
    ctx = _documents_context(actor, STAFF_ROLES)
    document = get_owned(Document, ctx, document_id, "Document not found")

    try:
        content = load_bytes(document.storage_key)
    except FileNotFoundError:
        raise NotFoundError("Document file is missing") from None

    return ActionResult.ok(
        {
            "content": content,
            "content_type": document.mime_type or "application/octet-stream",
            "filename": document.file_name,
        }
    )


@action("Document stats", "Failed to fetch document statistics")
def document_stats(actor) -> ActionResult:
    ctx = _documents_context(actor, STAFF_ROLES)

    rows = (
        db.session.query(
            Document.document_type,
            sa.func.count(Document.id),
            sa.func.coalesce(sa.func.sum(Document.file_size), 0),
        )
        .filter(Document.company_id == ctx.company_id)
        .group_by(Document.document_type)
        .all()
    )

    return ActionResult.ok(
        {
            "total_documents": sum(count for _, count, _ in rows),
            "total_size": int(sum(size for _, _, size in rows)),
            "by_type": {doc_type: count for doc_type, count, _ in rows},
        }
    )
