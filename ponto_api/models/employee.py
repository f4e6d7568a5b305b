from datetime import datetime
from ponto_api.extensions import db

class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    user_id   = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True)

    code      = db.Column(db.String(32), unique=True, nullable=False)
    email     = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(255), nullable=False)
    department = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    user = db.relationship("User", lazy="joined")

    @property
    def has_facial_reference(self) -> bool:
        from ponto_api.models.face_profile import EmployeeFaceProfile
        q = EmployeeFaceProfile.query.filter_by(employee_id=self.id, is_active=True)
        return db.session.query(q.exists()).scalar()

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "email": self.email,
            "full_name": self.full_name,
            "department": self.department,
            "is_active": self.is_active,
        }
