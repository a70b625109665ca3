"""Credential Enforcement: service-account mappings must carry the three signing fields.

Invariants:
    - project_id, client_email and private_key are required and non-empty
    - camelCase spellings (projectId, clientEmail, privateKey) are accepted
    - Output is a service-account info dict firebase_admin.credentials.Certificate accepts
"""

from collections.abc import Mapping

from rtdb_bridge.core.errors import ValidationError

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

_REQUIRED = {
    "client_email": "clientEmail",
    "private_key": "privateKey",
    "project_id": "projectId",
}


def check_json_credential(content: object) -> dict:
    """Validate a service-account mapping and normalize it to snake_case keys."""
    if not isinstance(content, Mapping) or not content:
        raise ValidationError(
            "JSON Object must contain 'project_id', 'client_email' and 'private_key'",
            "credentials",
        )

    info = dict(content)
    for key, camel in _REQUIRED.items():
        value = info.pop(camel, None) if key not in info else info[key]
        if not value or not isinstance(value, str):
            raise ValidationError(f"JSON Content must contain '{key}'", key)
        info[key] = value

    # keys pasted from env files often carry literal "\n"
    info["private_key"] = info["private_key"].replace("\\n", "\n")
    info.setdefault("type", "service_account")
    info.setdefault("token_uri", GOOGLE_TOKEN_URI)
    return info
