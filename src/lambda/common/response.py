"""CORS and JSON response helpers for API handlers."""

import json

from common import config


def corsOrigin(event):
    """Echo the request Origin back when it is allowed, else empty."""
    headers = (event or {}).get("headers") or {}
    headers_lower = {k.lower(): v for k, v in headers.items()}
    origin = headers_lower.get("origin", "")
    if "*" in config.ALLOWED_ORIGINS:
        return origin or "*"
    return origin if origin in config.ALLOWED_ORIGINS else ""


def jsonResponse(body, statusCode=200, origin="*"):
    """Return a response dict with JSON body and CORS headers for API Gateway."""
    return {
        "statusCode": statusCode,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Headers": "Content-Type,Authorization",
            "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,PATCH,OPTIONS",
        },
        "body": json.dumps(body, default=str) if not isinstance(body, str) else body,
    }
