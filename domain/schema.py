from domain.policies import ToolType, UserPlan

TOOL_ALLOW = [t.value for t in ToolType]
ACCOUNT_PLAN_ALLOW = [UserPlan.FREE.value, UserPlan.PREMIUM.value]

# ===== POST /api/usage/consume =====
consume_schema = {
    "type": "object",
    "properties": {
        "tool": {"type": "string", "enum": TOOL_ALLOW},
    },
    "required": ["tool"],
    "additionalProperties": True,
}

# ===== POST /api/tools/<tool> (payload is passed through to the provider) =====
tool_call_schema = {
    "type": "object",
    "maxProperties": 32,
    "additionalProperties": True,
}

# ===== POST /internal/accounts/<id>/plan =====
set_plan_schema = {
    "type": "object",
    "properties": {
        "plan": {"type": "string", "enum": ACCOUNT_PLAN_ALLOW},
    },
    "required": ["plan"],
    "additionalProperties": False,
}

# ===== POST /internal/accounts/<id>/signup =====
signup_schema = {
    "type": "object",
    "properties": {
        "email": {"type": ["string", "null"], "maxLength": 254, "pattern": r"^[^@\s]+@[^@\s]+\.[^@\s]+$"},
        "bonus": {"type": "integer", "minimum": 0, "maximum": 100000},
    },
    "additionalProperties": False,
}

# ===== POST /internal/accounts/<id>/bonus =====
grant_bonus_schema = {
    "type": "object",
    "properties": {
        "amount": {"type": "integer", "minimum": 1, "maximum": 100000},
    },
    "required": ["amount"],
    "additionalProperties": False,
}

# ===== GET /api/usage/history =====
history_query_schema = {
    "type": "object",
    "properties": {
        "limit": {"type": "string", "pattern": r"^\d{1,3}$"},
    },
    "additionalProperties": True,
}
