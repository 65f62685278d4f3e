"""
API Gateway handler (HTTP API payload 2.0, REST payload 1.0 also accepted). Routes by path.
"""
import json
import logging
import sys
from pathlib import Path

# Ensure common module is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from common import auth, config
from common.errors import Forbidden, NotFound, TrustNetError, ValidationError
from common.response import corsOrigin, jsonResponse

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

THREATS_PREFIX = "/digital-threats"


def _store():
    from common.store import DynamoStore
    return DynamoStore()


def _blobs():
    from common.blobs import S3BlobStore
    return S3BlobStore()


def _notifier():
    from api.notifications import SnsNotifier
    return SnsNotifier()


def _parseBody(event):
    """JSON body as dict; raises ValidationError on malformed JSON."""
    body = event.get("body")
    if body is None or body == "":
        return {}
    if isinstance(body, dict):
        return body
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        raise ValidationError("Invalid JSON body")
    if not isinstance(parsed, dict):
        raise ValidationError("Invalid JSON body")
    return parsed


def _requestPath(event):
    path = event.get("rawPath") or event.get("path") or ""
    if not path:
        path = event.get("requestContext", {}).get("http", {}).get("path", "")
    stage = event.get("requestContext", {}).get("stage", "")
    if stage and stage != "$default" and path.startswith(f"/{stage}/"):
        path = path[len(stage) + 1:]
    return path.rstrip("/") or "/"


def _requestMethod(event):
    return (event.get("requestContext", {}).get("http", {}).get("method") or event.get("httpMethod") or "GET").upper()


def handler(event, context):
    """Route request by path; return JSON with CORS headers."""
    origin = corsOrigin(event)
    try:
        path = _requestPath(event)
        method = _requestMethod(event)
        logger.info("path=%s, method=%s", path, method)

        if method == "OPTIONS":
            # CORS preflight
            return jsonResponse({"message": "CORS preflight successful"}, 200, origin)
        if method == "GET" and path == "/health":
            return jsonResponse({"ok": True}, 200, origin)

        path_params = event.get("pathParameters") or {}
        if path == THREATS_PREFIX:
            if method == "GET":
                return listThreats(event, origin)
            if method == "POST":
                return createThreat(event, origin)
        if method == "GET" and path == f"{THREATS_PREFIX}/my-threats":
            return listMyThreats(event, origin)
        if method == "GET" and path == f"{THREATS_PREFIX}/liked":
            return listLikedThreats(event, origin)
        if path.startswith(f"{THREATS_PREFIX}/"):
            parts = path[len(THREATS_PREFIX) + 1:].split("/")
            threat_id = path_params.get("id") or parts[0]
            action = parts[1] if len(parts) == 2 else None
            if len(parts) <= 2 and threat_id:
                if action is None and method == "POST":
                    return getThreat(event, threat_id, origin)
                if action is None and method == "PUT":
                    return updateThreat(event, threat_id, origin)
                if action is None and method == "DELETE":
                    return deleteThreat(event, threat_id, origin)
                if action == "like" and method == "POST":
                    return likeThreat(event, threat_id, origin)
                if action == "like" and method == "DELETE":
                    return unlikeThreat(event, threat_id, origin)
                if action == "like-status" and method == "GET":
                    return getLikeStatus(event, threat_id, origin)
                if action == "status" and method == "PATCH":
                    return updateThreatStatus(event, threat_id, origin)
        if method == "DELETE" and path.startswith("/users/"):
            user_id = path_params.get("id") or path.split("/users/")[-1].strip("/")
            if user_id and "/" not in user_id:
                return deleteUser(event, user_id, origin)
        if method == "GET" and path == "/notifications/status":
            return getSubscriptionStatus(event, origin)
        if method == "POST" and path == "/notifications/subscribe":
            return subscribeNotifications(event, origin)
        if method == "POST" and path == "/notifications/toggle":
            return toggleNotifications(event, origin)
        if method == "GET" and path == "/notifications/unsubscribe-email":
            return unsubscribeEmail(event, origin)
        return jsonResponse({"error": "Not Found", "path": path, "method": method}, 404, origin)
    except TrustNetError as e:
        logger.info("request rejected (%s): %s", e.statusCode, e.message)
        return jsonResponse({"error": e.message}, e.statusCode, origin)
    except Exception as e:
        logger.exception("handler error: %s", str(e))
        return jsonResponse({"error": str(e), "type": type(e).__name__}, 500, origin)


def listThreats(event, origin):
    """GET /digital-threats - newest threats (auth required)."""
    from api.threats import list_threats
    auth.verify(event)
    return jsonResponse({"threats": list_threats(_store())}, 200, origin)


def createThreat(event, origin):
    """POST /digital-threats - report a new threat; auto-subscribes the reporter."""
    from api.threats import create_threat
    user = auth.verify(event)
    body = _parseBody(event)
    threat = create_threat(_store(), _notifier(), user, body)
    return jsonResponse(
        {"message": "Digital threat created successfully", "threatId": threat["threatId"], "createdAt": threat["createdAt"]},
        200,
        origin,
    )


def listMyThreats(event, origin):
    from api.threats import list_my_threats
    user = auth.verify(event)
    return jsonResponse({"threats": list_my_threats(_store(), user["userId"])}, 200, origin)


def listLikedThreats(event, origin):
    from api.likes import list_liked_threats
    user = auth.verify(event)
    return jsonResponse({"threats": list_liked_threats(_store(), user["userId"])}, 200, origin)


def getThreat(event, threat_id, origin):
    """POST /digital-threats/{id} with {createdAt} - threat plus reporter name."""
    from api.threats import get_threat, require_created_at
    auth.verify(event)
    created_at = require_created_at(_parseBody(event))
    return jsonResponse(get_threat(_store(), threat_id, created_at), 200, origin)


def updateThreat(event, threat_id, origin):
    from api.threats import require_created_at, update_threat
    user = auth.verify(event)
    body = _parseBody(event)
    created_at = require_created_at(body)
    threat = update_threat(_store(), user, threat_id, created_at, body)
    return jsonResponse({"message": "Threat updated successfully", "threat": threat}, 200, origin)


def deleteThreat(event, threat_id, origin):
    """DELETE /digital-threats/{id} - owner or admin; cascades to the threat's likes."""
    from api.cascade import delete_threat
    from api.threats import require_created_at

    user = auth.verify(event)
    created_at = require_created_at(_parseBody(event))
    store = _store()
    existing = store.get(config.THREATS_TABLE, {"threatId": threat_id, "createdAt": created_at})
    if not existing:
        raise NotFound("Threat not found")
    if existing.get("submittedBy") != user["userId"] and not auth.isAdmin(user):
        raise Forbidden("Forbidden - only the submitter or an admin can delete this threat")
    result = delete_threat(store, threat_id, created_at)
    return jsonResponse(result.to_dict(), 200, origin)


def likeThreat(event, threat_id, origin):
    """POST /digital-threats/{id}/like - idempotent."""
    from api.likes import like_threat
    from api.threats import require_created_at
    user = auth.verify(event)
    created_at = require_created_at(_parseBody(event))
    result = like_threat(_store(), user["userId"], threat_id, created_at)
    return jsonResponse(result.to_dict(), 200, origin)


def unlikeThreat(event, threat_id, origin):
    """DELETE /digital-threats/{id}/like - idempotent."""
    from api.likes import unlike_threat
    from api.threats import require_created_at
    user = auth.verify(event)
    created_at = require_created_at(_parseBody(event))
    result = unlike_threat(_store(), user["userId"], threat_id, created_at)
    return jsonResponse(result.to_dict(), 200, origin)


def getLikeStatus(event, threat_id, origin):
    from api.likes import get_like_status
    user = auth.verify(event)
    return jsonResponse({"liked": get_like_status(_store(), user["userId"], threat_id)}, 200, origin)


def updateThreatStatus(event, threat_id, origin):
    """PATCH /digital-threats/{id}/status - admin only."""
    from api.threats import update_threat_status
    user = auth.verify(event)
    auth.requireAdmin(user)
    body = _parseBody(event)
    created_at = body.get("createdAt")
    status = body.get("status")
    if not created_at or not status:
        raise ValidationError("createdAt and status are required")
    result = update_threat_status(_store(), _notifier(), user, threat_id, created_at, status)
    return jsonResponse(result, 200, origin)


def deleteUser(event, user_id, origin):
    """DELETE /users/{id} - admin only; removes everything the user owns."""
    from api.cascade import delete_user
    user = auth.verify(event)
    auth.requireAdmin(user)
    result = delete_user(_store(), _blobs(), user_id)
    return jsonResponse(result.to_dict(), 200, origin)


def getSubscriptionStatus(event, origin):
    from api.notifications import get_subscription_status
    user = auth.verify(event)
    status = get_subscription_status(_store(), user["userId"])
    return jsonResponse({"subscribed": status["subscribed"], "email": status.get("email")}, 200, origin)


def subscribeNotifications(event, origin):
    from api.notifications import subscribe_user
    user = auth.verify(event)
    body = _parseBody(event)
    email = (body.get("email") or user.get("email") or "").strip()
    if not email:
        raise ValidationError("email is required")
    status = subscribe_user(_store(), _notifier(), user["userId"], email)
    return jsonResponse(
        {"message": "Subscribed successfully", "subscribed": status["subscribed"], "email": status.get("email")},
        200,
        origin,
    )


def toggleNotifications(event, origin):
    from api.notifications import toggle_subscription
    user = auth.verify(event)
    body = _parseBody(event)
    enabled = body.get("enabled")
    if not isinstance(enabled, bool):
        raise ValidationError("enabled must be a boolean")
    toggle_subscription(_store(), user["userId"], enabled)
    return jsonResponse(
        {"message": f"Notifications {'enabled' if enabled else 'disabled'}", "subscribed": enabled},
        200,
        origin,
    )


def unsubscribeEmail(event, origin):
    """GET /notifications/unsubscribe-email?token=...&userId=... - link from notification emails, no login."""
    from api.notifications import unsubscribe_by_token
    qs = event.get("queryStringParameters") or {}
    token = (qs.get("token") or "").strip()
    user_id = (qs.get("userId") or "").strip()
    if not token or not user_id:
        raise ValidationError("token and userId are required")
    unsubscribe_by_token(_store(), user_id, token)
    return jsonResponse({"message": "Unsubscribed successfully"}, 200, origin)
