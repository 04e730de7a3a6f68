import io

import pytest

from app.seacert.errors import NotFoundError, PermissionDeniedError, ValidationError, WorkflowError
from app.seacert.models import AuditEvent
from app.seacert.modules.documents.models import DocumentVersion
from app.seacert.modules.documents.service import (
    add_comment,
    assign_expert,
    build_document_storage_key,
    list_comments,
    list_documents,
    list_versions,
    open_document_file,
    resolve_review_status,
    review_document,
    upload_document,
    upload_new_version,
)
from app.seacert.modules.notifications.models import Notification
from app.seacert.modules.projects.service import create_project, mark_approved


@pytest.fixture()
def project(repo, people):
    return create_project(repo, {"title": "Container ship stability"}, people["client"])


@pytest.fixture()
def document(repo, storage, people, project):
    return upload_document(
        repo,
        storage,
        project,
        b"%PDF-1.4 hull plan",
        "hull plan.pdf",
        people["client"],
        content_type="application/pdf",
        doc_type="Structural plan",
    )


@pytest.mark.parametrize(
    "action,role,expected",
    [
        ("approve", "manager", "final_approved"),
        ("approve", "expert", "approved_stage1"),
        ("reject", "manager", "rejected"),
        ("reject", "expert", "rejected"),
        ("request_revision", "expert", "needs_revision"),
        ("anything", "manager", "needs_revision"),
        ("", "expert", "needs_revision"),
    ],
)
def test_resolve_review_status(action, role, expected):
    assert resolve_review_status(action, role) == expected


def test_upload_creates_pending_v1_and_submits_project(repo, storage, people, project, document):
    assert document.status == "pending"
    assert document.version == 1
    assert document.file_name == "hull_plan.pdf"
    assert document.doc_type == "Structural plan"
    assert document.uploaded_by == "Hossein Karimi"
    assert project.status == "under_review"
    assert [v.version for v in list_versions(repo, document)] == [1]
    assert open_document_file(storage, document) == b"%PDF-1.4 hull plan"

    manager_notes = repo.list(Notification, user_id=people["manager"].id)
    assert len(manager_notes) == 1
    assert manager_notes[0].type == "task"


def test_storage_key_layout():
    key = build_document_storage_key("MRN-2025-001", "ab" * 32, "Hull Plan.pdf")
    assert key == "projects/MRN-2025-001/" + "ab" * 8 + "/Hull_Plan.pdf"


def test_upload_rejects_empty_file(repo, storage, people, project):
    with pytest.raises(ValidationError):
        upload_document(repo, storage, project, b"", "empty.pdf", people["client"])


def test_upload_to_foreign_project_is_hidden(repo, storage, people, project):
    with pytest.raises(NotFoundError):
        upload_document(repo, storage, project, b"x", "x.pdf", people["client2"])


def test_upload_to_approved_project_refused(repo, storage, people, project):
    mark_approved(repo, project)
    with pytest.raises(WorkflowError):
        upload_document(repo, storage, project, b"x", "x.pdf", people["client"])


def test_assign_expert_moves_pending_to_under_review(repo, people, document):
    with pytest.raises(PermissionDeniedError):
        assign_expert(repo, document, people["expert"].id, people["admin"])
    with pytest.raises(ValidationError):
        assign_expert(repo, document, people["client"].id, people["manager"])

    assign_expert(repo, document, people["expert"].id, people["manager"])
    assert document.status == "under_review"
    assert document.assigned_expert_name == "Ali Ahmadi"
    assert repo.list(Notification, user_id=people["expert"].id)[0].title == "New document for review"


def test_manager_approval_is_final(repo, people, document):
    review_document(repo, document, "approve", people["manager"])
    assert document.status == "final_approved"
    assert document.reviewed_by == "Mohammad Rezaei"
    assert document.reviewed_at is not None


def test_two_stage_approval(repo, people, document):
    assign_expert(repo, document, people["expert"].id, people["manager"])
    review_document(repo, document, "approve", people["expert"])
    assert document.status == "approved_stage1"

    # Stage 1 is done; the expert has nothing more to do here.
    with pytest.raises(WorkflowError):
        review_document(repo, document, "approve", people["expert"])

    review_document(repo, document, "approve", people["manager"])
    assert document.status == "final_approved"


def test_reject_is_always_rejected(repo, people, document):
    review_document(repo, document, "reject", people["expert"], comment="Wrong scale")
    assert document.status == "rejected"
    with pytest.raises(WorkflowError):
        review_document(repo, document, "approve", people["manager"])


def test_unknown_action_requests_revision(repo, people, document):
    review_document(repo, document, "looks odd", people["manager"])
    assert document.status == "needs_revision"


def test_only_experts_and_managers_review(repo, people, document):
    for who in ("client", "admin"):
        with pytest.raises(PermissionDeniedError):
            review_document(repo, document, "approve", people[who])
    assert document.status == "pending"


def test_expert_must_be_the_assigned_one(repo, people, document):
    assign_expert(repo, document, people["expert"].id, people["manager"])
    with pytest.raises(PermissionDeniedError):
        review_document(repo, document, "approve", people["expert2"])


def test_review_comment_visibility(repo, people, document):
    review_document(repo, document, "approve", people["expert"], comment="Scantlings verified")
    review_document(repo, document, "request_revision", people["manager"], comment="Add fire plan")

    staff_view = list_comments(repo, document, people["manager"])
    assert [(c.content, c.is_internal) for c in staff_view] == [
        ("Scantlings verified", True),
        ("Add fire plan", False),
    ]
    client_view = list_comments(repo, document, people["client"])
    assert [c.content for c in client_view] == ["Add fire plan"]


def test_review_without_comment_adds_none(repo, people, document):
    review_document(repo, document, "approve", people["manager"], comment="   ")
    assert list_comments(repo, document, people["manager"]) == []


def test_review_is_audited_and_notifies_uploader(repo, people, document):
    review_document(repo, document, "reject", people["manager"])
    events = repo.list(AuditEvent, event_type="document_review")
    assert len(events) == 1
    assert '"to": "rejected"' in events[0].metadata_json

    notes = repo.list(Notification, user_id=people["client"].id)
    assert [n.title for n in notes] == ["Document rejected"]


def test_add_comment_rules(repo, people, document):
    with pytest.raises(ValidationError):
        add_comment(repo, document, "  ", people["client"])
    with pytest.raises(PermissionDeniedError):
        add_comment(repo, document, "secret", people["client"], is_internal=True)
    c = add_comment(repo, document, "Internal note", people["expert"], is_internal=True)
    assert c.is_internal is True
    assert list_comments(repo, document, people["client"]) == []


def test_new_version_resets_review(repo, storage, people, document):
    review_document(repo, document, "request_revision", people["manager"])
    upload_new_version(repo, storage, document, b"revised", "hull plan rev B.pdf", people["client"], changes="Rev B")
    assert document.version == 2
    assert document.status == "pending"
    assert document.reviewed_by is None
    versions = repo.list(DocumentVersion, document_id=document.id)
    assert [(v.version, v.changes) for v in versions] == [(1, "Initial upload"), (2, "Rev B")]
    assert open_document_file(storage, document) == b"revised"


def test_final_approved_document_cannot_be_replaced(repo, storage, people, document):
    review_document(repo, document, "approve", people["manager"])
    with pytest.raises(WorkflowError):
        upload_new_version(repo, storage, document, b"v2", "v2.pdf", people["client"])


def test_list_documents_scoping(repo, people, document):
    assert list_documents(repo, people["client2"]) == []
    assert list_documents(repo, people["client"]) == [document]
    assert list_documents(repo, people["manager"], status="pending") == [document]


# HTTP


def _upload(c, headers, project_id, data=b"drawing", name="plan.pdf"):
    return c.post(
        f"/api/projects/{project_id}/documents",
        data={"file": (io.BytesIO(data), name), "type": "General arrangement"},
        headers=headers,
        content_type="multipart/form-data",
    )


def test_review_flow_over_http(signed_in, app):
    from conftest import user_id

    c, ch = signed_in("client1")
    pid = c.post("/api/projects/", json={"title": "Ro-Ro ferry"}, headers=ch).json["project"]["id"]
    r = _upload(c, ch, pid)
    assert r.status_code == 201
    doc = r.json["document"]
    assert doc["status"] == "pending"

    m, mh = signed_in("manager1")
    r = m.post(f"/api/documents/{doc['id']}/assign", json={"expert_id": user_id(app, "expert1")}, headers=mh)
    assert r.status_code == 200
    assert r.json["document"]["status"] == "under_review"

    e, eh = signed_in("expert1")
    r = e.post(f"/api/documents/{doc['id']}/review", json={"action": "approve", "comment": "OK"}, headers=eh)
    assert r.status_code == 200
    assert r.json["document"]["status"] == "approved_stage1"

    r = m.post(f"/api/documents/{doc['id']}/review", json={"action": "approve"}, headers=mh)
    assert r.json["document"]["status"] == "final_approved"

    # client does not see the internal approval comment
    assert c.get(f"/api/documents/{doc['id']}/comments").json["comments"] == []
    assert len(m.get(f"/api/documents/{doc['id']}/comments").json["comments"]) == 1

    r = c.get(f"/api/documents/{doc['id']}/download")
    assert r.status_code == 200
    assert r.data == b"drawing"


def test_client_cannot_review_over_http(signed_in):
    c, ch = signed_in("client1")
    pid = c.post("/api/projects/", json={"title": "Yacht"}, headers=ch).json["project"]["id"]
    doc_id = _upload(c, ch, pid).json["document"]["id"]
    r = c.post(f"/api/documents/{doc_id}/review", json={"action": "approve"}, headers=ch)
    assert r.status_code == 403


def test_upload_with_bad_deadline_is_a_validation_error(signed_in):
    c, ch = signed_in("client1")
    pid = c.post("/api/projects/", json={"title": "Dredger"}, headers=ch).json["project"]["id"]
    r = c.post(
        f"/api/projects/{pid}/documents",
        data={"file": (io.BytesIO(b"drawing"), "plan.pdf"), "deadline": "not-a-date"},
        headers=ch,
        content_type="multipart/form-data",
    )
    assert r.status_code == 400
    assert c.get(f"/api/projects/{pid}/documents").json["documents"] == []


def test_assign_with_bad_deadline_is_a_validation_error(signed_in, app):
    from conftest import user_id

    c, ch = signed_in("client1")
    pid = c.post("/api/projects/", json={"title": "Pilot boat"}, headers=ch).json["project"]["id"]
    doc_id = _upload(c, ch, pid).json["document"]["id"]

    m, mh = signed_in("manager1")
    r = m.post(
        f"/api/documents/{doc_id}/assign",
        json={"expert_id": user_id(app, "expert1"), "deadline": "tomorrow"},
        headers=mh,
    )
    assert r.status_code == 400
    assert m.get(f"/api/documents/{doc_id}").json["document"]["status"] == "pending"
