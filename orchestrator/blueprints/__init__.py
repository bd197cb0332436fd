"""
Onboarding Orchestrator
Blueprint helpers.

Blueprints are thin: they parse the request, call one service method and
serialise the result. Domain exceptions are mapped to JSON errors by the
handlers registered in create_app.
"""

from flask import request

from orchestrator.core.exceptions import ValidationError


def json_body():
    """Return the JSON object body; ValidationError when it is not an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
