from flask import Blueprint
from sqlalchemy import text

from ponto_api.common.http import ok, fail
from ponto_api.extensions import db

bp = Blueprint("health", __name__, url_prefix="/api")

@bp.get("/health")
def health():
    try:
        db.session.execute(text("select 1"))
    except Exception as e:
        return fail("database unreachable", status=503, code="STORE_UNAVAILABLE", detail=str(e))
    return ok({"status": "ok"})
