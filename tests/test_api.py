"""
Tests: HTTP API surface.

Authentication headers, role checks, the response envelope and the
main endpoints of every blueprint.
"""

import io

from portal.stage_requirements import STAGE_ORDER


def _upload(client, headers, project_id, stage="formalization", req="ficha_formalizacion",
            filename="form.pdf", data=b"%PDF-1.4 form"):
    return client.post(
        "/api/v1/documents",
        data={
            "document": (io.BytesIO(data), filename),
            "project_id": str(project_id),
            "stage_name": stage,
            "requirement_id": req,
        },
        headers=headers,
        content_type="multipart/form-data",
    )


# ── Health & auth ────────────────────────────────────────────────────────


def test_health_is_public(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "ok"
    assert body["checks"]["database"]["status"] == "ok"
    assert "X-Request-ID" in res.headers


def test_missing_identity_is_401(client):
    res = client.get("/api/v1/projects")
    assert res.status_code == 401
    body = res.get_json()
    assert body["success"] is False
    assert body["code"] == "ERR_UNAUTHENTICATED"


def test_unknown_user_is_401(client):
    res = client.get("/api/v1/projects", headers={"X-User-Id": "9999"})
    assert res.status_code == 401


def test_role_header_cannot_escalate(client, owner, project):
    headers = {"X-User-Id": str(owner.id), "X-User-Role": "admin"}
    res = client.get("/api/v1/projects/stats", headers=headers)
    assert res.status_code == 403
    assert res.get_json()["code"] == "ERR_FORBIDDEN"


def test_unknown_route_envelope(client, owner, auth_headers):
    res = client.get("/api/v1/nothing-here", headers=auth_headers(owner))
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_plain_text_body_rejected(client, owner, auth_headers):
    res = client.post("/api/v1/projects", data="title=x", headers=auth_headers(owner),
                      content_type="text/plain")
    assert res.status_code == 415


# ── Catalog ──────────────────────────────────────────────────────────────


def test_stage_catalog(client, owner, auth_headers):
    res = client.get("/api/v1/stages", headers=auth_headers(owner))
    assert [s["id"] for s in res.get_json()["data"]] == list(STAGE_ORDER)

    res = client.get("/api/v1/stages/design/requirements", headers=auth_headers(owner))
    assert len(res.get_json()["data"]["requirements"]) == 6

    res = client.get("/api/v1/stages/launch/requirements", headers=auth_headers(owner))
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"


# ── Projects ─────────────────────────────────────────────────────────────


def test_create_and_list_projects(client, owner, other_user, admin, auth_headers):
    res = client.post("/api/v1/projects", json={"title": "Lab Booking", "description": "Rooms"},
                      headers=auth_headers(owner))
    assert res.status_code == 201
    created = res.get_json()["data"]
    assert created["owner_id"] == owner.id
    assert len(created["stages"]) == 5

    client.post("/api/v1/projects", json={"title": "Other"}, headers=auth_headers(other_user))

    mine = client.get("/api/v1/projects", headers=auth_headers(owner)).get_json()
    assert mine["total"] == 1
    everything = client.get("/api/v1/projects", headers=auth_headers(admin)).get_json()
    assert everything["total"] == 2


def test_create_project_requires_title(client, owner, auth_headers):
    res = client.post("/api/v1/projects", json={}, headers=auth_headers(owner))
    assert res.status_code == 400


def test_project_detail_access(client, project, owner, other_user, auth_headers):
    res = client.get(f"/api/v1/projects/{project.id}", headers=auth_headers(owner))
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["requirement_stats"]["total_requirements"] == 28

    res = client.get(f"/api/v1/projects/{project.id}", headers=auth_headers(other_user))
    assert res.status_code == 403


def test_soft_delete_restore_and_purge(client, project, admin, auth_headers):
    headers = auth_headers(admin)
    assert client.delete(f"/api/v1/projects/{project.id}", json={"reason": "dup"},
                         headers=headers).status_code == 200
    assert client.get(f"/api/v1/projects/{project.id}", headers=headers).status_code == 404
    assert client.get("/api/v1/projects/deleted", headers=headers).get_json()["total"] == 1

    assert client.post(f"/api/v1/projects/{project.id}/restore", headers=headers).status_code == 200
    assert client.post(f"/api/v1/projects/{project.id}/restore", headers=headers).status_code == 409

    client.delete(f"/api/v1/projects/{project.id}", headers=headers)
    res = client.delete(f"/api/v1/projects/{project.id}/permanent", json={"confirm": "yes"},
                        headers=headers)
    assert res.status_code == 400
    res = client.delete(f"/api/v1/projects/{project.id}/permanent",
                        json={"confirm": "DELETE_PERMANENTLY"}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()["data"]["code"] == project.code


def test_admin_stage_override(client, project, admin, owner, auth_headers):
    url = f"/api/v1/projects/{project.id}/stages/formalization"
    assert client.put(url, json={"status": "completed"}, headers=auth_headers(owner)).status_code == 403

    res = client.put(url, json={"status": "completed", "comments": "ok"}, headers=auth_headers(admin))
    assert res.status_code == 200
    assert res.get_json()["data"]["current_stage"] == "design"

    res = client.put(url, json={"status": "done"}, headers=auth_headers(admin))
    assert res.status_code == 400


# ── Documents ────────────────────────────────────────────────────────────


def test_upload_download_and_delete(client, project, owner, auth_headers):
    headers = auth_headers(owner)
    res = _upload(client, headers, project.id)
    assert res.status_code == 201
    body = res.get_json()
    assert body["message"] == "Document uploaded"
    assert body["data"]["status"] == "in-review"
    doc_id = body["data"]["document"]["id"]

    res = client.get(f"/api/v1/documents/{doc_id}/download", headers=headers)
    assert res.status_code == 200
    assert res.data == b"%PDF-1.4 form"
    assert "form.pdf" in res.headers["Content-Disposition"]

    res = client.get(f"/api/v1/documents/{doc_id}", headers=headers)
    assert res.get_json()["data"]["is_current"] is True

    assert client.delete(f"/api/v1/documents/{doc_id}", headers=headers).status_code == 200
    assert client.get(f"/api/v1/documents/{doc_id}", headers=headers).status_code == 404


def test_upload_validation_errors(client, project, owner, auth_headers):
    headers = auth_headers(owner)
    res = client.post("/api/v1/documents", data={"project_id": str(project.id)},
                      headers=headers, content_type="multipart/form-data")
    assert res.status_code == 400

    res = _upload(client, headers, project.id, filename="virus.exe")
    assert res.status_code == 400
    assert "accepted_types" in res.get_json()["details"]

    res = _upload(client, headers, project.id, req="not_a_requirement")
    assert res.status_code == 400


def test_upload_to_foreign_project_forbidden(client, project, other_user, auth_headers):
    res = _upload(client, auth_headers(other_user), project.id)
    assert res.status_code == 403


def test_document_access_restricted(client, project, owner, other_user, auth_headers):
    doc_id = _upload(client, auth_headers(owner), project.id).get_json()["data"]["document"]["id"]
    assert client.get(f"/api/v1/documents/{doc_id}", headers=auth_headers(other_user)).status_code == 403
    assert client.delete(f"/api/v1/documents/{doc_id}", headers=auth_headers(other_user)).status_code == 403


def test_project_documents_and_search(client, project, owner, auth_headers):
    headers = auth_headers(owner)
    _upload(client, headers, project.id, filename="form-v1.pdf")
    _upload(client, headers, project.id, filename="form-v2.pdf")

    res = client.get(f"/api/v1/documents/project/{project.id}", headers=headers)
    assert [d["original_name"] for d in res.get_json()["data"]] == ["form-v2.pdf"]

    res = client.get(f"/api/v1/documents/project/{project.id}?include_history=true", headers=headers)
    assert res.get_json()["total"] == 2

    res = client.get("/api/v1/documents/search?q=v1", headers=headers)
    assert [d["original_name"] for d in res.get_json()["data"]] == ["form-v1.pdf"]

    res = client.get("/api/v1/documents/search?q=f", headers=headers)
    assert res.status_code == 400

    assert client.get("/api/v1/documents/mine", headers=headers).get_json()["total"] == 2


# ── Requirements ─────────────────────────────────────────────────────────


def test_requirement_review_flow(client, project, owner, admin, auth_headers):
    _upload(client, auth_headers(owner), project.id)

    res = client.get(f"/api/v1/requirements/project/{project.id}?stage=formalization",
                     headers=auth_headers(owner))
    items = res.get_json()["data"]
    assert len(items) == 4
    form = next(i for i in items if i["requirement"] == "ficha_formalizacion")
    assert form["status"] == "in-review"
    assert form["current_document"]["original_name"] == "form.pdf"

    url = f"/api/v1/requirements/{project.id}/formalization/ficha_formalizacion/status"
    assert client.put(url, json={"status": "approved"}, headers=auth_headers(owner)).status_code == 403

    res = client.put(url, json={"status": "approved", "comments": "Looks good"},
                     headers=auth_headers(admin))
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["validation"]["status"] == "approved"
    assert data["stage_completed"] is False

    res = client.get(f"/api/v1/requirements/{project.id}/stats", headers=auth_headers(owner))
    stats = res.get_json()["data"]
    assert stats["stages"]["formalization"]["approved"] == 1
    assert stats["stages"]["formalization"]["completion_percentage"] == 25


def test_approve_all_endpoint(client, project, admin, auth_headers):
    res = client.put(f"/api/v1/requirements/{project.id}/design/approve-all", json={},
                     headers=auth_headers(admin))
    assert res.status_code == 200
    assert res.get_json()["message"] == "6 requirements approved"


def test_requirement_history_endpoint(client, project, owner, auth_headers):
    headers = auth_headers(owner)
    _upload(client, headers, project.id, filename="a.pdf")
    _upload(client, headers, project.id, filename="b.pdf")

    res = client.get(f"/api/v1/requirements/{project.id}/formalization/ficha_formalizacion/documents",
                     headers=headers)
    docs = res.get_json()["data"]
    assert [(d["original_name"], d["is_current"]) for d in docs] == [("b.pdf", True), ("a.pdf", False)]


# ── Notifications ────────────────────────────────────────────────────────


def test_notification_inbox(client, project, owner, auth_headers):
    headers = auth_headers(owner)
    _upload(client, headers, project.id)

    body = client.get("/api/v1/notifications", headers=headers).get_json()
    assert body["total"] == 1
    assert body["unread_count"] == 1
    note_id = body["data"][0]["id"]

    res = client.post(f"/api/v1/notifications/{note_id}/read", headers=headers)
    assert res.get_json()["data"]["is_read"] is True
    assert client.post("/api/v1/notifications/9999/read", headers=headers).status_code == 404
    res = client.post("/api/v1/notifications/read-all", headers=headers)
    assert res.get_json()["data"]["marked_read"] == 0
