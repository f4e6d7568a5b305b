# ponto_api/models/security.py
from ponto_api.extensions import db

# admin: everything; hr: enrollment and audit review; employee: own punches
ROLE_CODES = ("admin", "hr", "employee")


class Role(db.Model):
    __tablename__ = "roles"
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)

    grants = db.relationship("UserRole", back_populates="role", passive_deletes=True)

    @classmethod
    def ensure(cls, code: str) -> "Role":
        role = cls.query.filter_by(code=code).first()
        if role is None:
            role = cls(code=code)
            db.session.add(role)
            db.session.flush()
        return role

    def __repr__(self) -> str:
        return f"<Role {self.code}>"


class UserRole(db.Model):
    __tablename__ = "user_roles"
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)

    role = db.relationship("Role", back_populates="grants")
    user = db.relationship("User", backref=db.backref("user_roles", passive_deletes=True))

    @classmethod
    def grant(cls, user, code: str) -> "UserRole":
        """Give `user` the role `code` (created on first use). Flushes only."""
        role = Role.ensure(code)
        link = db.session.get(cls, (user.id, role.id))
        if link is None:
            link = cls(user_id=user.id, role_id=role.id)
            db.session.add(link)
            db.session.flush()
        return link
