# ponto_api/services/identity.py
from __future__ import annotations

from typing import List, Optional

from flask import current_app

from ponto_api.extensions import db
from ponto_api.models.employee import Employee
from ponto_api.models.master import WorkLocation, SystemSetting
from ponto_api.models.work_schedule import WorkSchedule
from ponto_api.services.face_matcher import FacePolicy
from ponto_api.services.geofence import GeofencingPolicy, DEFAULT_RADIUS_M

GEOFENCING_KEY = "geofencing"
FACIAL_RECOGNITION_KEY = "facial_recognition"


class IdentityStore:
    """Read-only view of employees, locations, schedules and policies."""

    def employee(self, employee_id: int) -> Optional[Employee]:
        return db.session.get(Employee, employee_id)

    def has_facial_reference(self, employee_id: int) -> bool:
        emp = self.employee(employee_id)
        return bool(emp and emp.has_facial_reference)

    def active_work_locations(self) -> List[WorkLocation]:
        return (
            WorkLocation.query.filter_by(is_active=True)
            .order_by(WorkLocation.name.asc())
            .all()
        )

    def work_location(self, location_id: Optional[int]) -> Optional[WorkLocation]:
        if location_id is None:
            return None
        loc = db.session.get(WorkLocation, location_id)
        return loc if loc is not None and loc.is_active else None

    def work_schedule(self, employee_id: int) -> Optional[WorkSchedule]:
        return WorkSchedule.query.filter_by(employee_id=employee_id, is_active=True).first()

    def geofencing_policy(self) -> GeofencingPolicy:
        default_radius = current_app.config.get("GEOFENCE_DEFAULT_RADIUS_M", DEFAULT_RADIUS_M)
        value = SystemSetting.get_value(GEOFENCING_KEY)
        if value is None:
            return GeofencingPolicy(
                enabled=bool(current_app.config.get("GEOFENCE_ENABLED", False)),
                default_radius_m=int(default_radius),
            )
        return GeofencingPolicy.from_setting(value, default_radius_m=int(default_radius))

    def face_policy(self) -> FacePolicy:
        cfg = current_app.config
        stored = SystemSetting.get_value(FACIAL_RECOGNITION_KEY) or {}
        return FacePolicy(
            similarity_threshold=float(stored.get("similarity_threshold", cfg.get("FACE_SIMILARITY_THRESHOLD", 0.85))),
            require_liveness=bool(stored.get("require_liveness", cfg.get("FACE_REQUIRE_LIVENESS", True))),
            allow_manual_punch=bool(stored.get("allow_manual_punch", cfg.get("ALLOW_MANUAL_PUNCH", False))),
        )
