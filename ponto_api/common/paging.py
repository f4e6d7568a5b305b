# ponto_api/common/paging.py
from flask import request

DEFAULT_SIZE = 20
MAX_SIZE = 100


def page_limit():
    """(page, size) from the query string; bad values fall back to the defaults."""
    page = request.args.get("page", 1, type=int)
    size = request.args.get("size", DEFAULT_SIZE, type=int)
    return max(page, 1), min(max(size, 1), MAX_SIZE)
