"""End-to-end flows through the HTTP and WebSocket surface."""

import inspect

import pytest

from stagingpro.services.identity import Role, User

IMAGE = "data:image/jpeg;base64,AAAA"


@pytest.fixture
def client_user():
    return User(id="u-client", email="client@example.com", role=Role.USER)


@pytest.fixture
def admin_user():
    return User(id="u-admin", email="admin@studio.test", role=Role.ADMIN)


def _place(api, headers, user, plan="furniture_add"):
    resp = api.post("/api/orders", json={"plan": plan, "image": IMAGE, "fileName": "room.jpg", "instructions": "Modern"}, headers=headers(user))
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_requests_without_a_token_are_rejected(api):
    assert api.get("/api/orders").status_code == 401
    assert api.get("/api/orders", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_clients_cannot_open_the_dashboard(api, headers, client_user):
    assert api.get("/api/dashboard", headers=headers(client_user)).status_code == 403


def test_paid_order_reaches_the_dashboard(api, headers, plans, checkout, email_client, client_user, admin_user):
    placed = _place(api, headers, client_user)
    order_id = placed["order"]["id"]
    assert placed["checkoutUrl"].startswith("https://checkout.test/")
    assert placed["order"]["paymentStatus"] == "unpaid"

    # not visible anywhere until paid
    assert api.get("/api/orders", headers=headers(client_user)).json() == []
    assert api.get("/api/dashboard", headers=headers(admin_user)).json()["submissions"] == []

    session_id = checkout.last_session_id()
    checkout.complete(session_id)
    resp = api.post(f"/api/orders/{order_id}/reconcile", json={"sessionId": session_id}, headers=headers(client_user))
    assert resp.status_code == 200
    assert resp.json()["paymentStatus"] == "paid"
    assert len(email_client.sent) == 2

    view = api.get("/api/dashboard", headers=headers(admin_user)).json()
    assert [s["id"] for s in view["submissions"]] == [order_id]
    assert view["stats"] == {"total": 1, "pending": 1, "processing": 0, "completed": 0}


def test_self_priced_session_cannot_settle_a_quote(api, headers, plans, data, checkout, client_user):
    order_id = _place(api, headers, client_user, plan="floor_plan_cg")["order"]["id"]
    data.submissions.update(order_id, {"quoted_amount": 5000})

    resp = api.post("/api/create-checkout-session", json={"planTitle": "3D", "amount": 1, "orderId": order_id}, headers=headers(client_user))
    assert resp.status_code == 200
    session_id = checkout.last_session_id()
    checkout.complete(session_id)

    resp = api.post(f"/api/orders/{order_id}/reconcile", json={"sessionId": session_id}, headers=headers(client_user))
    assert resp.status_code == 502
    assert data.submissions.get(order_id).payment_status == "quote_pending"


def test_single_plan_fulfilment(api, headers, make_submission, editor_record, email_client, admin_user):
    make_submission(id="ORD1")
    auth = headers(admin_user)

    resp = api.post("/api/dashboard/submissions/ORD1/assign", json={"editorId": editor_record.id}, headers=auth)
    assert resp.json()["status"] == "processing"

    resp = api.post("/api/dashboard/submissions/ORD1/deliver", json={"slot": "single", "file": IMAGE}, headers=auth)
    assert resp.json()["status"] == "reviewing"
    assert resp.json()["resultAddUrl"].endswith("results/ORD1_single.jpg")

    resp = api.post("/api/dashboard/submissions/ORD1/approve", headers=auth)
    assert resp.json()["status"] == "completed"
    assert email_client.subjects() == ["Results Ready: ORD1", "Results Ready: ORD1"]

    # completed is final
    resp = api.post("/api/dashboard/submissions/ORD1/assign", json={"editorId": None}, headers=auth)
    assert resp.status_code == 409


def test_editor_delivers_but_cannot_approve(api, headers, make_submission, editor_record):
    editor = User(id="u-editor", email=editor_record.email, role=Role.EDITOR)
    make_submission(id="ORD2", status="processing", assigned_editor_id=editor_record.id)
    make_submission(id="ORD3", status="processing", assigned_editor_id="ed_other")

    view = api.get("/api/dashboard", headers=headers(editor)).json()
    assert [s["id"] for s in view["submissions"]] == ["ORD2"]

    resp = api.post("/api/dashboard/submissions/ORD2/deliver", json={"slot": "single", "file": IMAGE}, headers=headers(editor))
    assert resp.status_code == 200
    assert api.post("/api/dashboard/submissions/ORD2/approve", headers=headers(editor)).status_code == 403
    assert api.post("/api/dashboard/submissions/ORD3/deliver", json={"slot": "single", "file": IMAGE}, headers=headers(editor)).status_code == 403


def test_quote_flow(api, headers, plans, checkout, email_client, client_user, admin_user):
    placed = _place(api, headers, client_user, plan="floor_plan_cg")
    order_id = placed["order"]["id"]
    assert placed["quote"] is True
    assert placed["checkoutUrl"] is None

    bad = api.post(f"/api/dashboard/submissions/{order_id}/quote", json={"amount": "abc"}, headers=headers(admin_user))
    assert bad.status_code == 400

    ok = api.post(f"/api/dashboard/submissions/{order_id}/quote", json={"amount": 50000}, headers=headers(admin_user))
    assert ok.status_code == 200
    assert ok.json()["quotedAmount"] == 50000
    assert f"Quote Ready: {order_id}" in email_client.subjects()

    resp = api.post(f"/api/orders/{order_id}/pay-quote", headers=headers(client_user))
    assert resp.status_code == 200
    assert checkout.sessions[checkout.last_session_id()]["amount"] == 50000


def test_plan_in_use_must_be_hidden_instead(api, headers, make_submission, admin_user):
    make_submission(plan="furniture_remove")
    resp = api.delete("/api/plans/furniture_remove", headers=headers(admin_user))
    assert resp.status_code == 409
    assert "visibility" in resp.json()["detail"]

    resp = api.post("/api/plans/furniture_remove/toggle-visibility", headers=headers(admin_user))
    assert resp.json()["isVisible"] is False
    assert "furniture_remove" not in [p["id"] for p in api.get("/api/plans").json()]


def test_plan_crud(api, headers, plans, admin_user, client_user):
    body = {"id": "dusk", "title": "Day to Dusk", "price": "$ 25", "amount": 2500, "number": "05", "description": ""}
    assert api.post("/api/plans", json=body, headers=headers(client_user)).status_code == 403

    created = api.post("/api/plans", json=body, headers=headers(admin_user))
    assert created.status_code == 201
    assert created.json()["isVisible"] is True

    patched = api.patch("/api/plans/dusk", json={"isVisible": False}, headers=headers(admin_user))
    assert patched.json()["isVisible"] is False
    assert api.delete("/api/plans/dusk", headers=headers(admin_user)).status_code == 204


def test_chat_and_read_state(api, headers, make_submission, client_user, admin_user):
    make_submission(id="CHAT1")
    resp = api.post("/api/submissions/CHAT1/messages", json={"content": "Can you keep the plants?"}, headers=headers(client_user))
    assert resp.status_code == 201
    assert resp.json()["sender_role"] == "user"
    assert resp.json()["sender_name"] == "client"

    view = api.get("/api/dashboard", params={"filter": "comments"}, headers=headers(admin_user)).json()
    assert view["submissions"][0]["chat"]["hasNew"] is True

    thread = api.get("/api/submissions/CHAT1/messages", headers=headers(admin_user)).json()
    assert [m["content"] for m in thread] == ["Can you keep the plants?"]

    view = api.get("/api/dashboard", params={"filter": "comments"}, headers=headers(admin_user)).json()
    assert view["submissions"][0]["chat"]["hasNew"] is False

    stranger = User(id="u-other", email="other@example.com", role=Role.USER)
    assert api.get("/api/submissions/CHAT1/messages", headers=headers(stranger)).status_code == 403
    assert api.post("/api/submissions/CHAT1/messages", json={"content": "   "}, headers=headers(client_user)).status_code == 400


def test_editor_roster_endpoints(api, headers, admin_user):
    resp = api.post("/api/editors", json={"name": "Rin", "specialty": "3D", "email": " RIN@studio.test"}, headers=headers(admin_user))
    assert resp.status_code == 201
    editor_id = resp.json()["id"]
    assert resp.json()["email"] == "rin@studio.test"

    rin = User(id="u-rin", email="rin@studio.test", role=Role.EDITOR)
    assert api.get("/api/dashboard", headers=headers(rin)).status_code == 200

    assert api.delete(f"/api/editors/{editor_id}", headers=headers(admin_user)).status_code == 204
    assert api.get("/api/dashboard", headers=headers(rin)).status_code == 403


def test_archive_endpoints(api, headers, admin_user):
    resp = api.post("/api/archive", json={"title": "Loft", "category": "Virtual Staging", "after_image": IMAGE}, headers=headers(admin_user))
    assert resp.status_code == 201
    assert api.get("/api/archive").json()[0]["title"] == "Loft"

    missing = api.post("/api/archive", json={"title": "No image", "category": "Virtual Staging"}, headers=headers(admin_user))
    assert missing.status_code == 400


def test_integrations(api, headers, analyzer, client_user):
    resp = api.post("/api/analyze-room", json={"imageBase64": IMAGE}, headers=headers(client_user))
    assert resp.status_code == 200
    assert resp.json() == {"analysis": analyzer.text}

    analyzer.text = None
    resp = api.post("/api/analyze-room", json={"imageBase64": IMAGE}, headers=headers(client_user))
    assert resp.status_code == 500
    assert resp.json() == {"message": "AI Analysis currently unavailable."}

    resp = api.post("/api/create-checkout-session", json={"planTitle": "Staging", "amount": 4500, "orderId": "X1"}, headers=headers(client_user))
    assert resp.json()["url"].startswith("https://checkout.test/")
    resp = api.post("/api/create-checkout-session", json={"planTitle": "Staging", "amount": 0, "orderId": "X1"}, headers=headers(client_user))
    assert resp.status_code == 500
    assert "message" in resp.json()


def test_upload_and_media(api, headers, storage, client_user):
    resp = api.post("/api/upload", json={"path": "u-client/a.jpg", "file": IMAGE}, headers=headers(client_user))
    assert resp.json() == {"url": "https://cdn.studio.test/u-client/a.jpg"}
    assert api.post("/api/upload", json={"path": "", "file": IMAGE}, headers=headers(client_user)).status_code == 400
    assert api.get("/api/media", params={"path": "u-client/a.jpg"}).status_code == 200
    assert api.get("/api/media", params={"path": "missing.jpg"}).status_code == 404

    storage.fail = True
    resp = api.post("/api/upload", json={"path": "u-client/b.jpg", "file": IMAGE}, headers=headers(client_user))
    assert resp.status_code == 502
    assert resp.json() == {"message": "storage offline"}


def test_pages(api, plans):
    home = api.get("/")
    assert home.status_code == 200
    assert "Virtual Staging" in home.text
    assert "Privacy Policy" in api.get("/privacy-policy").text
    assert api.get("/some/unknown/page").text == home.text
    assert api.get("/api/nothing-here").status_code == 404


def test_submission_socket_snapshot_and_changes(api, data, make_submission, token_for, admin_user):
    make_submission(id="WS1")
    with api.websocket_connect("/ws/submissions") as ws:
        ws.send_json({"type": "auth", "token": token_for(admin_user)})
        snapshot = ws.receive_json()
        assert snapshot["type"] == "snapshot"
        assert snapshot["user"]["role"] == "admin"
        assert [s["id"] for s in snapshot["submissions"]] == ["WS1"]

        data.submissions.update("WS1", {"status": "processing", "assigned_editor_id": "ed_x"})
        change = ws.receive_json()
        assert change["type"] == "change"
        assert change["eventType"] == "UPDATE"
        assert change["record"]["status"] == "processing"

        ws.send_json({"type": "auth", "token": None})
        signed_out = ws.receive_json()
        assert signed_out == {"type": "snapshot", "user": None, "submissions": []}


def test_default_plans_seeded_once(engine):
    from stagingpro.main import seed_default_plans

    assert seed_default_plans() == 4
    assert seed_default_plans() == 0


def test_http_handlers_run_in_the_threadpool():
    from fastapi.routing import APIRoute

    from stagingpro.main import app

    blocking = [
        r.path for r in app.routes
        if isinstance(r, APIRoute) and r.path != "/api/health" and inspect.iscoroutinefunction(r.endpoint)
    ]
    assert blocking == []
