"""
security.py: request payload validation for the JSON API
"""
from functools import wraps

from flask import request, abort, g
from jsonschema import validate, ValidationError

MAX_PAYLOAD_BYTES = 256 * 1024


def _validate_schema(data, schema):
    if not schema:
        return
    try:
        validate(instance=data, schema=schema)
    except ValidationError as e:
        abort(400, description=f"validation failed: {e.message}")


def safe_args(schema=None):
    """GET query params, stripped + validated"""
    args = {}
    for k, v in request.args.items():
        v = v.strip()
        if v:
            args[k] = v
    _validate_schema(args, schema)
    return args


def require_json(json_schema=None, *, allow_empty=False, only_methods=("POST", "PUT", "PATCH")):
    """
    JSON body gate:
      - json_schema  : schema the body must satisfy
      - allow_empty  : missing body is treated as {}
      - only_methods : methods the check applies to
    Parsed body lands on g.safe_input.
    """
    only_methods = tuple(only_methods or ())

    def deco(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            if only_methods and request.method.upper() not in only_methods:
                g.safe_input = None
                return f(*args, **kwargs)

            cl = request.content_length
            if cl and cl > MAX_PAYLOAD_BYTES:
                abort(413, description="request body too large")

            if not request.get_data(cache=True):
                if not allow_empty:
                    abort(400, description="JSON body required")
                payload = {}
            else:
                if not request.is_json:
                    abort(400, description="JSON body required")
                payload = request.get_json(silent=True)
                if not isinstance(payload, dict):
                    abort(400, description="JSON object required")

            _validate_schema(payload, json_schema)
            g.safe_input = payload
            return f(*args, **kwargs)
        return wrapped
    return deco
