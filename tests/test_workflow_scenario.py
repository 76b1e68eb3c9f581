"""
End-to-end approval workflow through the HTTP API.

An owner uploads the formalization documents, the reviewer approves them
one by one, the project moves to design, a design document is rejected
and then corrected.
"""

import io

from portal.models.notification import Notification
from portal.stage_requirements import get_requirements


def _upload(client, headers, project_id, stage, req, filename):
    res = client.post(
        "/api/v1/documents",
        data={
            "document": (io.BytesIO(b"%PDF-1.4 " + filename.encode()), filename),
            "project_id": str(project_id),
            "stage_name": stage,
            "requirement_id": req,
        },
        headers=headers,
        content_type="multipart/form-data",
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]


def _review(client, headers, project_id, stage, req, status, comments=None):
    res = client.put(
        f"/api/v1/requirements/{project_id}/{stage}/{req}/status",
        json={"status": status, "comments": comments},
        headers=headers,
    )
    assert res.status_code == 200, res.get_json()
    return res.get_json()["data"]


def test_full_review_cycle(client, owner, admin, auth_headers):
    owner_h = auth_headers(owner)
    admin_h = auth_headers(admin)

    project = client.post("/api/v1/projects", json={"title": "Student Portal Revamp"},
                          headers=owner_h).get_json()["data"]
    pid = project["id"]
    assert project["current_stage"] == "formalization"

    formalization = [r.id for r in get_requirements("formalization")]
    for req in formalization:
        ext = "xlsx" if req == "presupuesto_validado" else "pdf"
        _upload(client, owner_h, pid, "formalization", req, f"{req}.{ext}")

    detail = client.get(f"/api/v1/projects/{pid}", headers=owner_h).get_json()["data"]
    stages = {s["stage_name"]: s["status"] for s in detail["stages"]}
    assert stages["formalization"] == "in-progress"

    # Three of four approved: stage stays open
    for req in formalization[:3]:
        result = _review(client, admin_h, pid, "formalization", req, "approved")
        assert result["stage_completed"] is False
        assert result["current_stage"] == "formalization"

    # Last one completes the stage and advances the project
    result = _review(client, admin_h, pid, "formalization", formalization[3], "approved")
    assert result["stage_completed"] is True
    assert result["stage"]["status"] == "completed"
    assert result["current_stage"] == "design"

    owner_kinds = {n.kind for n in Notification.query.filter_by(recipient_id=owner.id)}
    assert {"document_uploaded_confirmation", "requirement_approved", "stage_approved"} <= owner_kinds

    # Design: upload, reject, correct
    _upload(client, owner_h, pid, "design", "especificacion_funcional", "spec.docx")
    result = _review(client, admin_h, pid, "design", "especificacion_funcional", "rejected",
                     comments="Missing non-functional requirements")
    assert result["stage"]["status"] == "in-progress"
    assert result["current_stage"] == "design"

    corrected = _upload(client, owner_h, pid, "design", "especificacion_funcional", "spec-v2.docx")
    assert corrected["is_correction"] is True
    assert corrected["previous_status"] == "rejected"
    assert corrected["status"] == "in-review"

    checklist = client.get(f"/api/v1/requirements/project/{pid}?stage=design",
                           headers=owner_h).get_json()["data"]
    spec = next(i for i in checklist if i["requirement"] == "especificacion_funcional")
    assert spec["status"] == "in-review"
    assert spec["comments"].startswith("DOCUMENT CORRECTED")
    assert spec["current_document"]["original_name"] == "spec-v2.docx"
    assert [d["original_name"] for d in spec["history"]] == ["spec-v2.docx", "spec.docx"]

    corrected_alerts = Notification.query.filter_by(recipient_id=admin.id, kind="document_corrected")
    assert corrected_alerts.count() == 1
