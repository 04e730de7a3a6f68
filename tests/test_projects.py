from datetime import datetime, timedelta

import pytest

from conftest import make_user

from app.seacert.errors import NotFoundError, PermissionDeniedError, ValidationError, WorkflowError
from app.seacert.models import AuditEvent
from app.seacert.modules.projects.service import (
    archive_project,
    can_transition_to,
    create_project,
    get_project_for,
    list_projects,
    mark_approved,
    next_project_code,
    reject_project,
    submit_project,
    update_project,
)
from app.seacert.utils import next_sequential_code, utcnow


def test_project_codes_are_sequential_and_unique(repo, people):
    year = utcnow().year
    a = create_project(repo, {"title": "Bulk carrier hull survey"}, people["client"])
    b = create_project(repo, {"title": "Tug stability booklet"}, people["client2"])
    assert a.code == f"MRN-{year}-001"
    assert b.code == f"MRN-{year}-002"
    assert a.status == "draft"
    assert a.client_user_id == people["client"].id
    assert a.client_name == "Hossein Karimi"


def test_code_sequence_continues_across_years():
    assert next_sequential_code(["SEA-2025-000041"], prefix="SEA", width=6, year=2026) == "SEA-2026-000042"
    assert next_sequential_code([], prefix="MRN", width=3, year=2025) == "MRN-2025-001"


def test_next_project_code_uses_highest_existing(repo, people):
    create_project(repo, {"title": "One"}, people["client"], code_prefix="PRJ")
    p = create_project(repo, {"title": "Two"}, people["client"], code_prefix="PRJ")
    p.code = "PRJ-2020-050"
    assert next_project_code(repo, "PRJ").endswith("-051")


def test_create_requires_title(repo, people):
    with pytest.raises(ValidationError):
        create_project(repo, {"title": "   "}, people["client"])


def test_create_rejects_bad_deadline(repo, people):
    with pytest.raises(ValidationError):
        create_project(repo, {"title": "Ferry", "deadline": "next tuesday"}, people["client"])


def test_fast_track_requires_permission(repo, people):
    with pytest.raises(PermissionDeniedError):
        create_project(repo, {"title": "Urgent", "is_fast_track": True}, people["client"])

    allowed = make_user(repo, "client3", "client", can_request_fast_track=True)
    p = create_project(repo, {"title": "Urgent", "is_fast_track": True}, allowed)
    assert p.is_fast_track is True


def test_create_is_audited(repo, people):
    p = create_project(repo, {"title": "Dredger"}, people["client"])
    events = repo.list(AuditEvent, event_type="project_create")
    assert len(events) == 1
    assert events[0].entity_id == str(p.id)
    assert events[0].actor_user_id == people["client"].id


def test_list_filters(repo, people):
    fast = make_user(repo, "client3", "client", can_request_fast_track=True)
    a = create_project(repo, {"title": "Bulk carrier hull survey"}, people["client"])
    b = create_project(repo, {"title": "Offshore crane", "is_fast_track": True}, fast)
    submit_project(repo, b, fast)

    assert list_projects(repo, status="under_review") == [b]
    assert list_projects(repo, is_fast_track=False) == [a]
    assert list_projects(repo, search="HULL") == [a]
    assert list_projects(repo, search=b.code.lower()) == [b]
    assert list_projects(repo, date_from=utcnow() + timedelta(days=1)) == []
    assert list_projects(repo, date_to=utcnow() + timedelta(days=1)) == [a, b]


def test_clients_only_see_their_own_projects(repo, people):
    a = create_project(repo, {"title": "Mine"}, people["client"])
    b = create_project(repo, {"title": "Theirs"}, people["client2"])
    assert list_projects(repo, people["client"]) == [a]
    assert list_projects(repo, people["manager"]) == [a, b]
    with pytest.raises(NotFoundError):
        get_project_for(repo, b.id, people["client"])
    assert get_project_for(repo, b.id, people["expert"]) is b


def test_update_project_fields(repo, people):
    p = create_project(repo, {"title": "Old"}, people["client"])
    update_project(repo, p, {"title": "New", "deadline": "2030-01-31"}, people["client"])
    assert p.title == "New"
    assert p.deadline == datetime(2030, 1, 31)
    assert len(repo.list(AuditEvent, event_type="project_update")) == 1

    # no-op edits leave no trail
    update_project(repo, p, {"title": "New"}, people["client"])
    assert len(repo.list(AuditEvent, event_type="project_update")) == 1


def test_denied_fast_track_update_changes_nothing(repo, people):
    p = create_project(repo, {"title": "Original"}, people["client"])
    with pytest.raises(PermissionDeniedError):
        update_project(repo, p, {"title": "Changed", "is_fast_track": True}, people["client"])
    assert p.title == "Original"
    assert p.is_fast_track is False
    assert repo.list(AuditEvent, event_type="project_update") == []


def test_approved_project_is_read_only(repo, people):
    p = create_project(repo, {"title": "Done"}, people["client"])
    mark_approved(repo, p)
    with pytest.raises(WorkflowError):
        update_project(repo, p, {"title": "Again"}, people["manager"])


def test_lifecycle_submit_reject_archive(repo, people):
    p = create_project(repo, {"title": "Patrol boat"}, people["client"])
    assert can_transition_to(p, "rejected")[0] is False

    submit_project(repo, p, people["client"])
    assert p.status == "under_review"
    with pytest.raises(WorkflowError):
        submit_project(repo, p, people["client"])

    with pytest.raises(PermissionDeniedError):
        reject_project(repo, p, people["expert"], "not mine to reject")
    with pytest.raises(ValidationError):
        reject_project(repo, p, people["manager"], "  ")
    reject_project(repo, p, people["manager"], "Stability calculations missing")
    assert p.status == "rejected"

    archive_project(repo, p, people["admin"])
    assert p.status == "archived"
    with pytest.raises(WorkflowError):
        archive_project(repo, p, people["admin"])


def test_cannot_archive_a_draft(repo, people):
    p = create_project(repo, {"title": "Draft"}, people["client"])
    with pytest.raises(WorkflowError):
        archive_project(repo, p, people["manager"])


def test_other_client_cannot_submit(repo, people):
    p = create_project(repo, {"title": "Private"}, people["client"])
    with pytest.raises(NotFoundError):
        submit_project(repo, p, people["client2"])


# HTTP


def test_create_and_list_over_http(signed_in):
    c, headers = signed_in("client1")
    r = c.post("/api/projects/", json={"title": "Fishing vessel", "deadline": "2030-06-01"}, headers=headers)
    assert r.status_code == 201
    project = r.json["project"]
    assert project["status"] == "draft"
    assert project["code"].startswith("MRN-")

    r = c.get("/api/projects/?status=draft")
    assert [p["id"] for p in r.json["projects"]] == [project["id"]]

    r = c.get("/api/projects/?status=bogus")
    assert r.status_code == 400


def test_expert_cannot_create_project(signed_in):
    c, headers = signed_in("expert1")
    r = c.post("/api/projects/", json={"title": "Nope"}, headers=headers)
    assert r.status_code == 403


def test_fast_track_denied_over_http(signed_in):
    c, headers = signed_in("client1")
    r = c.post("/api/projects/", json={"title": "Rush", "is_fast_track": True}, headers=headers)
    assert r.status_code == 403


def test_client_gets_404_for_foreign_project(signed_in):
    c1, h1 = signed_in("client1")
    pid = c1.post("/api/projects/", json={"title": "Mine"}, headers=h1).json["project"]["id"]

    c2, _ = signed_in("client2")
    assert c2.get(f"/api/projects/{pid}").status_code == 404

    m, _ = signed_in("manager1")
    r = m.get(f"/api/projects/{pid}")
    assert r.status_code == 200
    assert r.json["documents"] == []


def test_reject_over_http(signed_in):
    c, h = signed_in("client1")
    pid = c.post("/api/projects/", json={"title": "Barge"}, headers=h).json["project"]["id"]
    assert c.post(f"/api/projects/{pid}/submit", headers=h).json["project"]["status"] == "under_review"

    m, mh = signed_in("manager1")
    r = m.post(f"/api/projects/{pid}/reject", json={}, headers=mh)
    assert r.status_code == 400
    r = m.post(f"/api/projects/{pid}/reject", json={"reason": "Incomplete"}, headers=mh)
    assert r.status_code == 200
    assert r.json["project"]["status"] == "rejected"

    r = m.post(f"/api/projects/{pid}/reject", json={"reason": "Again"}, headers=mh)
    assert r.status_code == 409
