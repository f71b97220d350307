"""OpenAPI customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- A shared ``TooManyRequests`` response documenting the 429 envelope and the
  ``Retry-After`` / ``X-RateLimit-*`` headers, referenced by every operation
  (all routes sit behind the standard rate limit policy)
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from app.schemas.envelope import ErrorEnvelope

_RATE_LIMIT_HEADERS: Dict[str, Any] = {
    "Retry-After": {
        "description": "Seconds to wait before retrying (window length, rounded up).",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Limit": {
        "description": "Maximum requests allowed per window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "UNIX epoch seconds when the current window ends.",
        "schema": {"type": "integer"},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to document rate limiting."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        schemas = components.setdefault("schemas", {})
        schemas.setdefault(
            "ErrorEnvelope",
            ErrorEnvelope.model_json_schema(ref_template="#/components/schemas/{model}"),
        )
        for name, definition in schemas["ErrorEnvelope"].pop("$defs", {}).items():
            schemas.setdefault(name, definition)

        responses = components.setdefault("responses", {})
        responses.setdefault(
            "TooManyRequests",
            {
                "description": "Rate limit exceeded for this client and policy.",
                "headers": _RATE_LIMIT_HEADERS,
                "content": {
                    "application/json": {
                        "schema": {"$ref": "#/components/schemas/ErrorEnvelope"}
                    }
                },
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Health",
                "description": "Liveness check and rate limiter backend status.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for methods in schema.get("paths", {}).values():
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj.setdefault("responses", {}).setdefault(
                        "429", {"$ref": "#/components/responses/TooManyRequests"}
                    )

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
