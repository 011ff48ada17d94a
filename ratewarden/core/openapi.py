"""OpenAPI customization utilities.

Enriches the generated OpenAPI schema with:
- API Key security scheme (``X-API-Key``), health endpoint exempt
- Tags metadata
- The 429 and 503 responses every throttled operation can return
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_THROTTLED_RESPONSES: Dict[str, Dict[str, Any]] = {
    "429": {
        "description": "Rate limit exceeded. See Retry-After and X-RateLimit-* headers.",
    },
    "503": {
        "description": "Rate limit store unavailable (only when fail-open is disabled).",
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Provide your API key via the X-API-Key header.",
            },
        )
        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Limits",
                "description": "Record attempts, read quota and clear per-action limits.",
            },
            {
                "name": "Health",
                "description": "Liveness check including store reachability.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path.endswith("/health"):
                    method_obj["security"] = []
                elif path.startswith("/v1/"):
                    responses = method_obj.setdefault("responses", {})
                    for code, body in _THROTTLED_RESPONSES.items():
                        responses.setdefault(code, body)

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
