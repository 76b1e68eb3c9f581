"""
Project Approval Portal
Stage catalog Blueprint (read-only).

Endpoints:
    GET /api/v1/stages                        — the five stages in order
    GET /api/v1/stages/<stage>/requirements   — requirement checklist of a stage
"""

from flask import Blueprint

from portal.services.stage_pipeline import require_stage
from portal.stage_requirements import get_stage, list_stages
from portal.utils.errors import api_success, register_error_handlers

stage_bp = Blueprint("stages", __name__, url_prefix="/api/v1/stages")
register_error_handlers(stage_bp)


@stage_bp.route("", methods=["GET"])
def stages():
    return api_success([s.to_dict(include_requirements=False) for s in list_stages()])


@stage_bp.route("/<stage_name>/requirements", methods=["GET"])
def stage_requirements(stage_name):
    require_stage(stage_name)
    return api_success(get_stage(stage_name).to_dict())
