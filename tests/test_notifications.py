import pytest

from app.seacert.errors import NotFoundError, ValidationError
from app.seacert.modules.notifications.service import list_notifications, mark_all_read, mark_read, notify, notify_role


def test_notify_skips_missing_recipient(repo):
    assert notify(repo, None, type="info", title="nobody") is None


def test_notify_rejects_unknown_type(repo, people):
    with pytest.raises(ValidationError):
        notify(repo, people["client"].id, type="urgent", title="x")


def test_notify_role_reaches_active_users_only(repo, people):
    from conftest import make_user

    make_user(repo, "manager2", "manager", is_active=False)
    sent = notify_role(repo, "manager", type="task", title="Review queue")
    assert [n.user_id for n in sent] == [people["manager"].id]


def test_list_newest_first_and_unread_filter(repo, people):
    uid = people["client"].id
    a = notify(repo, uid, type="info", title="first")
    b = notify(repo, uid, type="info", title="second")
    b.created_at = a.created_at  # same tick; id breaks the tie
    notify(repo, people["client2"].id, type="info", title="not yours")

    assert [n.title for n in list_notifications(repo, people["client"])] == ["second", "first"]
    mark_read(repo, a.id, people["client"])
    assert [n.title for n in list_notifications(repo, people["client"], unread_only=True)] == ["second"]


def test_mark_read_is_idempotent(repo, people):
    n = notify(repo, people["client"].id, type="success", title="Certificate issued")
    assert mark_read(repo, n.id, people["client"]) is True
    assert mark_read(repo, n.id, people["client"]) is False
    assert n.is_read is True


def test_mark_read_other_users_notification(repo, people):
    n = notify(repo, people["client"].id, type="info", title="private")
    with pytest.raises(NotFoundError):
        mark_read(repo, n.id, people["client2"])
    with pytest.raises(NotFoundError):
        mark_read(repo, 12345, people["client"])


def test_mark_all_read(repo, people):
    for i in range(3):
        notify(repo, people["expert"].id, type="task", title=f"doc {i}")
    assert mark_all_read(repo, people["expert"]) == 3
    assert mark_all_read(repo, people["expert"]) == 0


def test_notifications_over_http(signed_in, app):
    from conftest import user_id

    m, mh = signed_in("manager1")
    r = m.patch(f"/api/admin/users/{user_id(app, 'client1')}/fast-track", json={"can_request_fast_track": True}, headers=mh)
    assert r.status_code == 200

    c, ch = signed_in("client1")
    r = c.get("/api/notifications/")
    assert r.status_code == 200
    assert r.json["unread"] == 1
    nid = r.json["notifications"][0]["id"]

    assert c.post(f"/api/notifications/{nid}/read", headers=ch).json["changed"] is True
    assert c.post(f"/api/notifications/{nid}/read", headers=ch).json["changed"] is False
    assert c.get("/api/notifications/?unread=1").json["notifications"] == []

    r = m.post(f"/api/notifications/{nid}/read", headers=mh)
    assert r.status_code == 404
