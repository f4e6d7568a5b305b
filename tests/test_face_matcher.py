import pytest

from conftest import add_employee

from ponto_api.models.face_profile import EmployeeFaceProfile
from ponto_api.services.face_engine import FaceEngine
from ponto_api.services.face_matcher import (
    DeepFaceMatcher,
    FaceMatchResult,
    FacePolicy,
    evaluate_match,
    MATCHED,
    NO_MATCH,
    LOW_CONFIDENCE,
    LIVENESS_FAILED,
    IDENTITY_MISMATCH,
)

POLICY = FacePolicy(similarity_threshold=0.85, require_liveness=True)


@pytest.mark.parametrize(
    "result,expected",
    [
        (FaceMatchResult(matched_employee_id=1, confidence=0.97, liveness_passed=True), MATCHED),
        (FaceMatchResult(matched_employee_id=1, confidence=0.85, liveness_passed=True), MATCHED),
        (FaceMatchResult(matched_employee_id=1, confidence=0.84, liveness_passed=True), LOW_CONFIDENCE),
        (FaceMatchResult(matched_employee_id=2, confidence=0.99, liveness_passed=True), IDENTITY_MISMATCH),
        (FaceMatchResult(matched_employee_id=1, confidence=0.99, liveness_passed=False), LIVENESS_FAILED),
        (FaceMatchResult(confidence=0.99, liveness_passed=True), NO_MATCH),
    ],
)
def test_evaluate_match(result, expected):
    assert evaluate_match(result, 1, POLICY) == expected


def test_evaluate_without_expected_identity_accepts_anyone():
    r = FaceMatchResult(matched_employee_id=7, confidence=0.9, liveness_passed=True)
    assert evaluate_match(r, None, POLICY) == MATCHED


def test_confidence_is_clamped():
    assert FaceMatchResult(confidence=1.7).confidence == 1.0
    assert FaceMatchResult(confidence=-0.3).confidence == 0.0


def test_from_dict_parses_strings():
    r = FaceMatchResult.from_dict({"matched_employee_id": "3", "confidence": "0.91",
                                   "liveness_passed": True, "audit_id": ""})
    assert r.matched_employee_id == 3
    assert r.confidence == pytest.approx(0.91)
    assert r.audit_id is None
    assert r.raw_image_ref == "no-image"


# ---------- DeepFaceMatcher with the engine patched out ----------

@pytest.fixture
def engine(monkeypatch):
    state = {"embedding": [1.0, 0.0, 0.0], "live": True, "liveness_calls": 0}

    def _embedding(_img):
        return state["embedding"]

    def _liveness(_img):
        state["liveness_calls"] += 1
        return state["live"]

    monkeypatch.setattr(FaceEngine, "get_embedding", staticmethod(_embedding))
    monkeypatch.setattr(FaceEngine, "check_liveness", staticmethod(_liveness))
    return state


def _profile(session, emp, vector, active=True):
    session.add(EmployeeFaceProfile(employee_id=emp.id, embedding=vector, is_active=active))
    session.commit()


def test_best_profile_wins(session, engine):
    e1 = add_employee(session, "E1", enrolled=False)
    e2 = add_employee(session, "E2", enrolled=False)
    _profile(session, e1, [0.0, 1.0, 0.0])
    _profile(session, e2, [1.0, 0.05, 0.0])

    r = DeepFaceMatcher().verify("img.jpg", expected_employee_id=e1.id, image_ref="audit/1/x.jpg")

    assert r.matched_employee_id == e2.id
    assert r.confidence > 0.99
    assert r.liveness_passed is True
    assert r.raw_image_ref == "audit/1/x.jpg"


def test_inactive_profiles_and_employees_are_ignored(session, engine):
    e1 = add_employee(session, "E1", enrolled=False)
    gone = add_employee(session, "E2", enrolled=False, active=False)
    _profile(session, e1, [1.0, 0.0, 0.0], active=False)
    _profile(session, gone, [1.0, 0.0, 0.0])

    r = DeepFaceMatcher().verify("img.jpg")

    assert r.matched_employee_id is None
    assert r.detail == {"reason": "no_reference_profiles"}


def test_no_face_detected(session, engine):
    e1 = add_employee(session, "E1")
    engine["embedding"] = None

    r = DeepFaceMatcher().verify("img.jpg", expected_employee_id=e1.id)

    assert r.matched_employee_id is None
    assert r.confidence == 0.0
    assert r.detail["reason"] == "no_face_detected"


def test_liveness_skipped_when_disabled(session, engine):
    e1 = add_employee(session, "E1", enrolled=False)
    _profile(session, e1, [1.0, 0.0, 0.0])

    r = DeepFaceMatcher(check_liveness=False).verify("img.jpg")

    assert r.matched_employee_id == e1.id
    assert r.liveness_passed is False
    assert engine["liveness_calls"] == 0


def test_compute_similarity():
    assert FaceEngine.compute_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert FaceEngine.compute_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert FaceEngine.compute_similarity([0, 0], [1, 0]) == 0.0


def test_rank_picks_closest_row():
    idx, score = FaceEngine.rank([1.0, 0.0], [[0.0, 1.0], [0.0, 0.0], [2.0, 0.1]])
    assert idx == 2
    assert score == pytest.approx(FaceEngine.compute_similarity([1.0, 0.0], [2.0, 0.1]))
    assert FaceEngine.rank([1.0, 0.0], []) == (None, 0.0)
