from datetime import datetime

from werkzeug.security import generate_password_hash, check_password_hash

from ponto_api.extensions import db


class User(db.Model):
    """Login account. Employees link to it through Employee.user_id."""
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), default="active")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # read-only shortcut over user_roles
    roles = db.relationship(
        "Role",
        secondary="user_roles",
        lazy="joined",
        viewonly=True,
        overlaps="user_roles,user,role,grants",
    )

    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    def role_codes(self):
        return sorted(r.code for r in self.roles)

    @property
    def employee_id(self):
        from ponto_api.models.employee import Employee  # circular at import time
        emp = Employee.query.filter_by(user_id=self.id).first()
        return emp.id if emp else None
