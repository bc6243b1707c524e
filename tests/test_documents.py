# tests/test_documents.py
from __future__ import annotations

import io

from sqlalchemy.exc import OperationalError

from fleetdesk.extensions import db
from fleetdesk.models import Document
from fleetdesk.services import documents, features, loads

PDF = b"%PDF-1.4 signed delivery note"


def _upload(actor, content=PDF, filename="Proof of Delivery.pdf", content_type="application/pdf", **payload):
    payload.setdefault("document_type", "pod")
    return documents.upload_document(actor, content, filename, content_type, payload)


def test_upload_stores_file_under_company(dispatcher, company, tmp_path):
    result = _upload(dispatcher)

    assert result.success, result.error
    assert result.message == "Document Proof of Delivery.pdf uploaded successfully"
    data = result.data
    assert data["document_type"] == "pod"
    assert data["file_size"] == len(PDF)
    assert data["mime_type"] == "application/pdf"

    row = db.session.get(Document, data["id"])
    assert row.storage_key.startswith(f"documents/{company.id}/")
    assert row.storage_key.endswith("_Proof_of_Delivery.pdf")
    assert (tmp_path / "receipts" / row.storage_key).read_bytes() == PDF


def test_upload_checks(dispatcher, app):
    assert _upload(dispatcher, content=b"").error == "No file provided"
    assert _upload(dispatcher, document_type="passport").error == "Invalid document data"
    assert _upload(dispatcher, content_type="application/x-msdownload").error == "File type not supported"

    app.config["DOCUMENT_MAX_BYTES"] = 10
    too_big = _upload(dispatcher)
    assert too_big.error == "File size exceeds 10MB limit"
    assert too_big.status_code == 400
    assert Document.query.count() == 0


def test_links_must_belong_to_company(dispatcher, make_company, make_profile, make_customer, load_payload):
    load = loads.create_load(dispatcher, load_payload()).data
    linked = _upload(dispatcher, load_id=load["id"])
    assert linked.data["load_number"] == load["load_number"]

    other = make_company("Other Transport")
    outsider = make_profile("dispatcher", company_id=other.id)
    result = _upload(outsider, load_id=load["id"])
    assert result.error == "Invalid load selected"

    assert _upload(dispatcher, invoice_id=999).error == "Invalid invoice selected"
    assert _upload(dispatcher, quote_id=999).error == "Invalid quote selected"


def test_driver_cannot_upload(driver_user):
    assert _upload(driver_user).error == "Insufficient permissions"


def test_list_filters_and_stats(dispatcher, load_payload):
    load = loads.create_load(dispatcher, load_payload()).data
    pod = _upload(dispatcher, load_id=load["id"]).data
    permit = _upload(dispatcher, content=b"\x89PNG permit", filename="permit.png", content_type="image/png",
                     document_type="permit").data

    by_type = documents.list_documents(dispatcher, document_type="permit").data
    assert [d["id"] for d in by_type] == [permit["id"]]
    by_load = documents.list_documents(dispatcher, load_id=load["id"]).data
    assert [d["id"] for d in by_load] == [pod["id"]]
    assert documents.list_documents(dispatcher, document_type="passport").error == "Invalid document type"

    stats = documents.document_stats(dispatcher).data
    assert stats["total_documents"] == 2
    assert stats["total_size"] == len(PDF) + len(b"\x89PNG permit")
    assert stats["by_type"] == {"pod": 1, "permit": 1}


def test_update_is_management_only(dispatcher, manager):
    doc = _upload(dispatcher).data

    assert documents.update_document(dispatcher, doc["id"], {"document_type": "customs"}).error == (
        "Insufficient permissions"
    )

    result = documents.update_document(manager, doc["id"], {"document_type": "customs"})
    assert result.success
    assert result.data["document_type"] == "customs"


def test_delete_removes_file(dispatcher, manager, tmp_path):
    doc = _upload(dispatcher).data
    key = db.session.get(Document, doc["id"]).storage_key

    result = documents.delete_document(manager, doc["id"])
    assert result.success
    assert result.message == "Document Proof of Delivery.pdf deleted successfully"
    assert not (tmp_path / "receipts" / key).exists()
    assert documents.download_document(manager, doc["id"]).error == "Document not found"


def test_download_reports_missing_file(dispatcher, tmp_path):
    doc = _upload(dispatcher).data
    fetched = documents.download_document(dispatcher, doc["id"]).data
    assert fetched["content"] == PDF
    assert fetched["filename"] == "Proof of Delivery.pdf"

    (tmp_path / "receipts" / db.session.get(Document, doc["id"]).storage_key).unlink()
    missing = documents.download_document(dispatcher, doc["id"])
    assert missing.error == "Document file is missing"
    assert missing.status_code == 404


def test_failed_commit_leaves_no_file(dispatcher, tmp_path, monkeypatch):
    def broken_commit():
        raise OperationalError("INSERT INTO document", {}, Exception("database is locked"))

    monkeypatch.setattr(db.session, "commit", broken_commit)
    result = _upload(dispatcher)
    monkeypatch.undo()

    assert result.error == "Failed to upload document"
    assert [p for p in (tmp_path / "receipts").rglob("*") if p.is_file()] == []


def test_document_management_switch(company_admin, dispatcher):
    assert features.toggle_feature(company_admin, "document_management", False).success

    result = _upload(dispatcher)
    assert result.error == "Document management is not enabled for this company"
    assert result.status_code == 403


def test_documents_over_http(client, make_profile, login):
    make_profile("dispatcher", email="desk@acmehaulage.co.za", password="Str0ng!Passw0rd")
    login("desk@acmehaulage.co.za", "Str0ng!Passw0rd")

    missing = client.post("/api/documents", data={"document_type": "pod"}, content_type="multipart/form-data")
    assert missing.status_code == 400

    upload = client.post(
        "/api/documents",
        data={"file": (io.BytesIO(PDF), "pod.pdf", "application/pdf"), "document_type": "pod"},
        content_type="multipart/form-data",
    )
    assert upload.status_code == 201, upload.get_json()
    doc_id = upload.get_json()["data"]["id"]

    download = client.get(f"/api/documents/{doc_id}/download")
    assert download.status_code == 200
    assert download.data == PDF

    listed = client.get("/api/documents?type=pod").get_json()["data"]
    assert [d["id"] for d in listed] == [doc_id]
