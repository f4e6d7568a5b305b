from datetime import datetime

from ponto_api.extensions import db
from ponto_api.models.types import JSONType


LOCATION_TYPES = ("office", "home_office", "field")


class WorkLocation(db.Model):
    """
    An approved place to punch from.

      latitude, longitude -> center point (optional unless geofencing is on)
      radius_meters       -> allowed radius; falls back to the geofencing
                             policy's default radius when null
    """

    __tablename__ = "work_locations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    type = db.Column(db.String(20), nullable=False, default="office")

    latitude = db.Column(db.Numeric(9, 6, asdecimal=False), nullable=True)
    longitude = db.Column(db.Numeric(9, 6, asdecimal=False), nullable=True)
    radius_meters = db.Column(db.Integer, nullable=True, default=100)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("type in ('office','home_office','field')", name="ck_work_location_type"),
        db.CheckConstraint("radius_meters is null or radius_meters > 0", name="ck_work_location_radius"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "radius_meters": self.radius_meters,
            "is_active": self.is_active,
        }


class SystemSetting(db.Model):
    """Key/value policy store edited by admin tooling (e.g. key='geofencing')."""

    __tablename__ = "system_settings"

    key = db.Column(db.String(80), primary_key=True)
    value = db.Column(JSONType, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @classmethod
    def get_value(cls, key: str, default=None):
        row = db.session.get(cls, key)
        return row.value if row is not None else default

    @classmethod
    def put(cls, key: str, value, description: str = None) -> "SystemSetting":
        row = db.session.get(cls, key)
        if row is None:
            row = cls(key=key, value=value, description=description)
            db.session.add(row)
        else:
            row.value = value
            if description:
                row.description = description
        return row
