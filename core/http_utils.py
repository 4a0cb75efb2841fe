from flask import make_response, jsonify


def no_store(resp):
    resp.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    resp.headers["Pragma"] = "no-cache"
    resp.headers["Expires"] = "0"
    return resp


# common JSON envelopes
def _json_ok(payload=None, status=200):
    payload = payload or {}
    return no_store(make_response(jsonify({"ok": True, **payload}), status))


def _json_err(code, message=None, status=400, **extra):
    return no_store(make_response(jsonify({"ok": False, "error": code, "message": message, **extra}), status))
