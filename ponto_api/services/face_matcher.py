"""
Face matching contract consumed by the punch authorizer.

The authorizer never computes embeddings itself: it receives a
FaceMatchResult (already computed, or produced lazily by a FaceMatcher)
and classifies it against the active FacePolicy.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ponto_api.extensions import db
from ponto_api.models.employee import Employee
from ponto_api.models.face_profile import EmployeeFaceProfile
from ponto_api.services.evidence import NO_IMAGE
from ponto_api.services.face_engine import FaceEngine

logger = logging.getLogger(__name__)

# outcome tags, also used as recognition_result["outcome"] in audit records
MATCHED = "matched"
NO_MATCH = "no_match"
LOW_CONFIDENCE = "low_confidence"
LIVENESS_FAILED = "liveness_failed"
IDENTITY_MISMATCH = "identity_mismatch"


@dataclass(frozen=True)
class FacePolicy:
    similarity_threshold: float = 0.85
    require_liveness: bool = True
    allow_manual_punch: bool = False


@dataclass
class FaceMatchResult:
    matched_employee_id: Optional[int] = None
    confidence: float = 0.0
    liveness_passed: bool = False
    raw_image_ref: str = NO_IMAGE
    # set when the attempt was already logged (e.g. by /face/verify)
    audit_id: Optional[int] = None
    detail: dict = field(default_factory=dict)

    def __post_init__(self):
        self.confidence = min(max(float(self.confidence or 0.0), 0.0), 1.0)

    @classmethod
    def from_dict(cls, data: dict) -> "FaceMatchResult":
        emp = data.get("matched_employee_id")
        audit_id = data.get("audit_id")
        return cls(
            matched_employee_id=int(emp) if emp not in (None, "") else None,
            confidence=float(data.get("confidence") or 0.0),
            liveness_passed=bool(data.get("liveness_passed", False)),
            raw_image_ref=data.get("raw_image_ref") or NO_IMAGE,
            audit_id=int(audit_id) if audit_id not in (None, "") else None,
        )

    def to_dict(self) -> dict:
        return {
            "matched_employee_id": self.matched_employee_id,
            "confidence": self.confidence,
            "liveness_passed": self.liveness_passed,
            "raw_image_ref": self.raw_image_ref,
            "audit_id": self.audit_id,
        }


def evaluate_match(result: FaceMatchResult, expected_employee_id: Optional[int], policy: FacePolicy) -> str:
    """Classify a match result into one of the outcome tags."""
    if result.matched_employee_id is None:
        return NO_MATCH
    if expected_employee_id is not None and result.matched_employee_id != expected_employee_id:
        return IDENTITY_MISMATCH
    if result.confidence < policy.similarity_threshold:
        return LOW_CONFIDENCE
    if policy.require_liveness and not result.liveness_passed:
        return LIVENESS_FAILED
    return MATCHED


class FaceMatcher:
    """verify(image, expected_employee_id) -> FaceMatchResult"""

    def verify(self, image, expected_employee_id: Optional[int] = None, image_ref: str = NO_IMAGE) -> FaceMatchResult:
        raise NotImplementedError


class DeepFaceMatcher(FaceMatcher):
    """
    1:N search over active reference profiles with DeepFace embeddings.
    The best-scoring employee is reported with its cosine similarity;
    thresholding is left to the caller's policy.
    """

    def __init__(self, check_liveness: bool = True):
        self.check_liveness = check_liveness

    def _candidates(self):
        return (
            db.session.query(EmployeeFaceProfile)
            .join(Employee, Employee.id == EmployeeFaceProfile.employee_id)
            .filter(EmployeeFaceProfile.is_active.is_(True), Employee.is_active.is_(True))
            .all()
        )

    def verify(self, image, expected_employee_id: Optional[int] = None, image_ref: str = NO_IMAGE) -> FaceMatchResult:
        embedding = FaceEngine.get_embedding(image)
        if not embedding:
            return FaceMatchResult(raw_image_ref=image_ref, detail={"reason": "no_face_detected"})

        # profiles from another embedding model cannot be compared
        profiles = [p for p in self._candidates() if len(p.embedding or []) == len(embedding)]
        idx, best_sim = FaceEngine.rank(embedding, [p.embedding for p in profiles])
        if idx is None:
            return FaceMatchResult(raw_image_ref=image_ref, detail={"reason": "no_reference_profiles"})
        best_profile = profiles[idx]

        liveness = FaceEngine.check_liveness(image) if self.check_liveness else False
        logger.info(
            "face match: best employee=%s similarity=%.3f liveness=%s expected=%s",
            best_profile.employee_id, best_sim, liveness, expected_employee_id,
        )
        return FaceMatchResult(
            matched_employee_id=best_profile.employee_id,
            confidence=best_sim,
            liveness_passed=liveness,
            raw_image_ref=image_ref,
            detail={"profile_id": best_profile.id},
        )


def enroll_face(employee_id: int, file_storage, label: Optional[str] = None) -> dict:
    """Store a reference capture and its embedding as an active profile."""
    from ponto_api.services.evidence import save_evidence, evidence_path

    key = save_evidence(file_storage, employee_id, prefix="references")
    embedding = FaceEngine.get_embedding(evidence_path(key))
    if not embedding:
        return {"success": False, "error": "Face detection failed or multiple faces found"}

    profile = EmployeeFaceProfile(
        employee_id=employee_id,
        image_url=key,
        embedding=list(embedding),
        embedding_version=FaceEngine.MODEL_NAME,
        label=label,
        is_active=True,
    )
    db.session.add(profile)
    db.session.commit()
    logger.info("face profile %s enrolled for employee %s", profile.id, employee_id)
    return {"success": True, "profile_id": profile.id}
