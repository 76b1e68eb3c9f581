"""
Requirement checklist read model.

Joins the static catalog with stored validations and documents into the
per-project checklist a reviewer works from. Read-only.
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import select

from portal.models import db
from portal.models.document import Document
from portal.services import requirement_validation as validations
from portal.services.project_service import get_project
from portal.stage_requirements import list_stages


def list_requirements(project_id: int, stage_name: str | None = None) -> list[dict]:
    """Checklist entries in catalog order, one per requirement."""
    project = get_project(project_id)
    by_key = {(v.stage_name, v.requirement_id): v for v in validations.get_by_project(project.id)}

    docs_by_key = defaultdict(list)
    stmt = (
        select(Document)
        .where(Document.project_id == project.id)
        .order_by(Document.uploaded_at.desc(), Document.id.desc())
    )
    for doc in db.session.execute(stmt).scalars():
        docs_by_key[(doc.stage_name, doc.requirement_id)].append(doc)

    items = []
    for stage in list_stages():
        if stage_name and stage.id != stage_name:
            continue
        for req in stage.requirements:
            key = (stage.id, req.id)
            validation = by_key.get(key)
            current_id = validation.current_document_id if validation else None
            history = [d.to_dict(is_current=d.id == current_id) for d in docs_by_key[key]]
            current = next((d for d in history if d["is_current"]), None)
            items.append({
                "stage": stage.id,
                "requirement": req.id,
                "name": req.name,
                "description": req.description,
                "required": req.required,
                "accepted_types": list(req.accepted_types),
                "max_size": req.max_size,
                "status": validation.status if validation else "pending",
                "comments": validation.admin_comments if validation else None,
                "reviewed_by": validation.reviewed_by if validation else None,
                "reviewed_at": validation.reviewed_at.isoformat()
                if validation and validation.reviewed_at else None,
                "current_document": current,
                "history": history,
            })
    return items


def requirement_stats(project_id: int) -> dict:
    """Per-stage counts by status plus completion percentages."""
    items = list_requirements(project_id)
    stages = {}
    for item in items:
        entry = stages.setdefault(item["stage"], {
            "total": 0, "pending": 0, "in-review": 0, "approved": 0, "rejected": 0,
        })
        entry["total"] += 1
        entry[item["status"]] += 1

    for entry in stages.values():
        entry["completion_percentage"] = (
            round(entry["approved"] * 100 / entry["total"]) if entry["total"] else 0
        )

    total = len(items)
    approved = sum(1 for i in items if i["status"] == "approved")
    return {
        "project_id": project_id,
        "stages": stages,
        "total_requirements": total,
        "approved_requirements": approved,
        "completion_percentage": round(approved * 100 / total) if total else 0,
    }
