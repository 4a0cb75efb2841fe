# services/ai/router.py
"""
Billable AI operations are opaque here: a provider is any callable
`fn(payload: dict) -> JSON-serialisable result`, registered per tool.
"""
from flask import current_app

from domain.policies import ToolType, parse_tool

PROVIDERS_KEY = "ai_providers"


class ProviderNotConfigured(LookupError):
    pass


class ProviderFailed(RuntimeError):
    pass


def register_provider(app, tool, fn):
    providers = app.extensions.setdefault(PROVIDERS_KEY, {})
    providers[parse_tool(tool)] = fn


def has_provider(tool: ToolType) -> bool:
    return tool in current_app.extensions.get(PROVIDERS_KEY, {})


def run_tool(tool, payload):
    tool = parse_tool(tool)
    fn = current_app.extensions.get(PROVIDERS_KEY, {}).get(tool)
    if fn is None:
        raise ProviderNotConfigured(tool.value)
    try:
        return fn(payload)
    except Exception as e:
        current_app.logger.exception("[AI] provider failed tool=%s", tool.value)
        raise ProviderFailed(f"{tool.value}: {e.__class__.__name__}") from e
