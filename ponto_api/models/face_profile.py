from datetime import datetime
from ponto_api.extensions import db
from ponto_api.models.types import JSONType

class EmployeeFaceProfile(db.Model):
    __tablename__ = "employee_face_profiles"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = db.Column(db.Text, nullable=True)
    embedding = db.Column(JSONType, nullable=False)  # Array of floats
    embedding_version = db.Column(db.String(50), default="Facenet512", nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    label = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    employee = db.relationship("Employee", backref=db.backref("face_profiles", lazy="dynamic"))

    def to_dict(self):
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "image_url": self.image_url,
            "label": self.label,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
