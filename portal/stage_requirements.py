"""
Stage requirement catalog.

Static, read-only definition of the five approval stages a project moves
through and the document checklist that gates each of them. The workflow
engine only reads from here: stage order drives the current-stage pointer
and the per-stage requirement count drives stage completion.

Stage order:
    formalization → design → delivery → operation → maintenance
"""

from __future__ import annotations

from dataclasses import dataclass, field

_MB = 1024 * 1024

_DOCS = ("pdf", "doc", "docx")
_DOCS_AND_SHEETS = ("pdf", "doc", "docx", "xls", "xlsx")


@dataclass(frozen=True)
class RequirementDefinition:
    """One checklist item of a stage."""

    id: str
    name: str
    description: str
    required: bool = True
    accepted_types: tuple[str, ...] = _DOCS
    max_size: int = 5 * _MB

    def accepts_extension(self, extension: str) -> bool:
        return extension.lower().lstrip(".") in self.accepted_types

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "required": self.required,
            "accepted_types": list(self.accepted_types),
            "max_size": self.max_size,
            "max_size_mb": round(self.max_size / _MB, 1),
        }


@dataclass(frozen=True)
class StageDefinition:
    id: str
    name: str
    description: str
    requirements: tuple[RequirementDefinition, ...] = field(default_factory=tuple)

    @property
    def requirement_ids(self) -> list[str]:
        return [r.id for r in self.requirements]

    def to_dict(self, include_requirements: bool = True) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "order": STAGE_ORDER.index(self.id) + 1,
            "requirement_count": len(self.requirements),
        }
        if include_requirements:
            d["requirements"] = [r.to_dict() for r in self.requirements]
        return d


# ── Catalog ──────────────────────────────────────────────────────────────────

STAGE_ORDER = ("formalization", "design", "delivery", "operation", "maintenance")

STAGE_CATALOG: dict[str, StageDefinition] = {
    "formalization": StageDefinition(
        id="formalization",
        name="Formalization",
        description="Initial validation of the project",
        requirements=(
            RequirementDefinition(
                "ficha_formalizacion", "Project formalization form",
                "Official project formalization document",
            ),
            RequirementDefinition(
                "aprobacion_go", "Formalization approval (GO)",
                "GO approval document to continue",
            ),
            RequirementDefinition(
                "codigo_proyecto", "Assigned project code",
                "Official assignment of the project code",
                max_size=2 * _MB,
            ),
            RequirementDefinition(
                "presupuesto_validado", "Validated budget and operation",
                "Budget and operational plan validation",
                accepted_types=_DOCS_AND_SHEETS, max_size=10 * _MB,
            ),
        ),
    ),
    "design": StageDefinition(
        id="design",
        name="Design and Validation",
        description="Technical design validations",
        requirements=(
            RequirementDefinition(
                "requerimientos_tecnicos", "Technical and operational requirements",
                "Detailed requirements specification", max_size=10 * _MB,
            ),
            RequirementDefinition(
                "especificacion_funcional", "Functional specification",
                "Functional specification of the system", max_size=15 * _MB,
            ),
            RequirementDefinition(
                "planificacion_definitiva", "Final plan",
                "Final project plan",
                accepted_types=_DOCS_AND_SHEETS, max_size=10 * _MB,
            ),
            RequirementDefinition(
                "aprobacion_arquitectura", "Architecture approval",
                "Architecture approval document", max_size=10 * _MB,
            ),
            RequirementDefinition(
                "aprobacion_infraestructura", "Infrastructure approval",
                "Infrastructure approval document", max_size=10 * _MB,
            ),
            RequirementDefinition(
                "aprobacion_diseno_go", "Design approval (GO)",
                "Final GO approval for design",
            ),
        ),
    ),
    "delivery": StageDefinition(
        id="delivery",
        name="Delivery and Configuration",
        description="Validation of deliverables and environments",
        requirements=(
            RequirementDefinition(
                "solicitud_ambientes", "Environment creation request",
                "Formal request to create environments",
            ),
            RequirementDefinition(
                "diseno_pruebas", "Design document and test evidence",
                "Detailed design and evidence of executed tests", max_size=20 * _MB,
            ),
            RequirementDefinition(
                "politica_datos", "Data processing policy approval",
                "Approval of data processing policies",
            ),
            RequirementDefinition(
                "escenarios_prueba", "Test scenario approval (JCPS)",
                "Approval of JCPS test scenarios", max_size=10 * _MB,
            ),
            RequirementDefinition(
                "aprobacion_ambientes", "Environment approval (GO)",
                "Final GO approval for environments",
            ),
        ),
    ),
    "operation": StageDefinition(
        id="operation",
        name="Operational Acceptance",
        description="Operational validation of the system",
        requirements=(
            RequirementDefinition(
                "documentacion_soporte", "Support documentation and user manual",
                "Complete support documentation and manuals", max_size=25 * _MB,
            ),
            RequirementDefinition(
                "configuraciones_tecnicas", "Technical configuration and installation",
                "Technical configuration and installation guide", max_size=15 * _MB,
            ),
            RequirementDefinition(
                "diseno_evidencia_pruebas", "Final design and test evidence",
                "Final design and complete test evidence", max_size=25 * _MB,
            ),
            RequirementDefinition(
                "plan_produccion", "Go-live plan",
                "Detailed plan for the production rollout", max_size=10 * _MB,
            ),
            RequirementDefinition(
                "mesa_ayuda", "Help desk documents",
                "Documentation for the help desk", max_size=15 * _MB,
            ),
            RequirementDefinition(
                "evidencia_capacitaciones", "Training evidence",
                "Evidence of delivered training sessions", max_size=20 * _MB,
            ),
            RequirementDefinition(
                "aprobacion_kit_digital", "Digital kit usage approval",
                "Approval to use the digital kit",
            ),
        ),
    ),
    "maintenance": StageDefinition(
        id="maintenance",
        name="Operation and Maintenance",
        description="Stabilisation period and project closure",
        requirements=(
            RequirementDefinition(
                "backlog_pendientes", "Pending requirements backlog",
                "List of pending requirements",
                accepted_types=_DOCS_AND_SHEETS, max_size=10 * _MB,
            ),
            RequirementDefinition(
                "cierre_proyecto", "Project closure",
                "Formal project closure document", max_size=10 * _MB,
            ),
            RequirementDefinition(
                "aprobacion_cierre_go", "Closure approval (GO)",
                "Final GO approval for closure",
            ),
            RequirementDefinition(
                "pendientes_implementacion", "Outstanding implementation items",
                "List of outstanding implementation items",
                accepted_types=_DOCS_AND_SHEETS, max_size=10 * _MB,
            ),
            RequirementDefinition(
                "documentacion_cierre", "Closure documentation",
                "Complete closure documentation", max_size=20 * _MB,
            ),
            RequirementDefinition(
                "tareas_operacion", "Operation tasks",
                "Definition of ongoing operation tasks", max_size=15 * _MB,
            ),
        ),
    ),
}


# ── Lookups ──────────────────────────────────────────────────────────────────


def is_valid_stage(stage_name: str | None) -> bool:
    return stage_name in STAGE_CATALOG


def stage_index(stage_name: str | None) -> int:
    """Position of a stage in the fixed order, -1 for unknown values."""
    try:
        return STAGE_ORDER.index(stage_name)
    except ValueError:
        return -1


def list_stages() -> list[StageDefinition]:
    return [STAGE_CATALOG[s] for s in STAGE_ORDER]


def get_stage(stage_name: str) -> StageDefinition | None:
    return STAGE_CATALOG.get(stage_name)


def get_requirements(stage_name: str) -> tuple[RequirementDefinition, ...]:
    stage = STAGE_CATALOG.get(stage_name)
    return stage.requirements if stage else ()


def get_requirement(stage_name: str, requirement_id: str) -> RequirementDefinition | None:
    for req in get_requirements(stage_name):
        if req.id == requirement_id:
            return req
    return None


def requirement_name(stage_name: str, requirement_id: str) -> str:
    """Display name of a requirement, falling back to its id."""
    req = get_requirement(stage_name, requirement_id)
    return req.name if req else f"Requirement {requirement_id}"


def stage_display_name(stage_name: str) -> str:
    stage = STAGE_CATALOG.get(stage_name)
    return stage.name if stage else stage_name
