"""
Correction detection for re-uploads.

An upload is a *correction* when the requirement's previous status was
``rejected``. The result only selects the notification kind and the
review comment; the new status is ``in-review`` either way.
"""

from __future__ import annotations

from dataclasses import dataclass

from portal.services import requirement_validation as validations

CORRECTION_PREFIX = "DOCUMENT CORRECTED"


@dataclass(frozen=True)
class Classification:
    is_correction: bool
    previous_status: str


def classify(project_id: int, stage_name: str, requirement_id: str) -> Classification:
    previous = validations.get_status(project_id, stage_name, requirement_id)
    return Classification(is_correction=previous == "rejected", previous_status=previous)


def review_comment(classification: Classification, original_name: str) -> str:
    """Validation comment recorded for an upload."""
    if classification.is_correction:
        return f"{CORRECTION_PREFIX}: {original_name} uploaded after rejection - awaiting review"
    return f"Document uploaded: {original_name} - awaiting review"
