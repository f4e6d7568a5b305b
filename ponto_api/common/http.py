# ponto_api/common/http.py
from flask import jsonify


def ok(data=None, status=200, **meta):
    body = {"success": True, "data": data}
    if meta:
        body["meta"] = meta
    return jsonify(body), status


def fail(message="Bad Request", status=400, code=None, detail=None, errors=None):
    """Error envelope; empty optional parts are left out."""
    extra = {"code": code, "detail": detail, "errors": errors}
    error = {"message": message, **{k: v for k, v in extra.items() if v}}
    return jsonify({"success": False, "error": error}), status
