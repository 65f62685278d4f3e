"""
Digital threat records: create, read, edit and admin status changes.
Likes live in api.likes and deletes in api.cascade.
"""
import logging
import uuid
from datetime import datetime

from common import config
from common.auth import isAdmin, requireAdmin
from common.batching import BestEffort
from common.errors import Conflict, Forbidden, NotFound, ValidationError

from api import notifications

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

THREAT_TYPES = ("url", "email", "phone")
THREAT_STATUSES = ("verified", "unverified")
EDITABLE_FIELDS = ("artifact", "type", "description")
LIST_LIMIT = 50


def _now():
    return datetime.utcnow().isoformat() + "Z"


def validate_create(body):
    """Check required string fields and type. Raises ValidationError."""
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON body")
    for field in ("artifact", "type", "description"):
        value = body.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{field} is required")
    if body["type"] not in THREAT_TYPES:
        raise ValidationError("Type must be url, email, or phone")


def require_created_at(body):
    created_at = (body or {}).get("createdAt") if isinstance(body, dict) else None
    if not created_at or not isinstance(created_at, str):
        raise ValidationError("createdAt is required and must be a string")
    return created_at


def artifact_exists(store, artifact):
    items = store.query(
        config.THREATS_TABLE,
        "artifact = :artifact",
        {":artifact": artifact},
        index=config.THREATS_BY_ARTIFACT_INDEX,
        limit=1,
    )
    return bool(items)


def create_threat(store, notifier, user, body):
    """Insert a new unverified threat owned by the caller.

    Uniqueness of artifact is a read-then-write check, so two simultaneous
    creates of the same artifact can both succeed.
    """
    validate_create(body)
    artifact = body["artifact"].strip()
    if artifact_exists(store, artifact):
        raise Conflict("Artifact already exists")

    now = _now()
    threat = {
        "threatId": str(uuid.uuid4()),
        "createdAt": now,
        "updatedAt": now,
        "submittedBy": user["userId"],
        "artifact": artifact,
        "type": body["type"],
        "description": body["description"].strip(),
        "status": "unverified",
        "likes": 0,
        "viewable": "THREATS",
    }
    store.put(config.THREATS_TABLE, threat)
    logger.info("created threat=%s by user=%s", threat["threatId"], user["userId"])

    if notifier is not None and user.get("email"):
        notifications.auto_subscribe(notifier, user["email"])
    return threat


def list_threats(store):
    """Newest threats first."""
    return store.query(
        config.THREATS_TABLE,
        "viewable = :threats",
        {":threats": "THREATS"},
        index=config.THREATS_BY_VIEWABLE_INDEX,
        limit=LIST_LIMIT,
        forward=False,
    )


def list_my_threats(store, user_id):
    return store.query(
        config.THREATS_TABLE,
        "submittedBy = :userId",
        {":userId": user_id},
        index=config.THREATS_BY_SUBMITTER_INDEX,
        limit=LIST_LIMIT,
        forward=False,
    )


def get_threat(store, threat_id, created_at):
    threat = store.get(config.THREATS_TABLE, {"threatId": threat_id, "createdAt": created_at})
    if not threat:
        raise NotFound("Threat not found")
    reporter_name = "Unknown User"
    try:
        reporter = store.get(config.USERS_TABLE, {"userId": threat.get("submittedBy", "")})
        if reporter and reporter.get("firstName") and reporter.get("lastName"):
            reporter_name = f"{reporter['firstName']} {reporter['lastName']}"
    except Exception as e:
        logger.warning("reporter lookup failed for threat=%s: %s", threat_id, e)
    return {"threat": threat, "reporterName": reporter_name}


def update_threat(store, user, threat_id, created_at, body):
    """Owner or admin edits artifact/type/description; unspecified fields keep their value."""
    key = {"threatId": threat_id, "createdAt": created_at}
    existing = store.get(config.THREATS_TABLE, key)
    if not existing:
        raise NotFound("Threat not found")
    if existing.get("submittedBy") != user["userId"] and not isAdmin(user):
        raise Forbidden("Forbidden - only the submitter or an admin can edit this threat")

    merged = {}
    for field in EDITABLE_FIELDS:
        value = body.get(field)
        if value is None:
            merged[field] = existing.get(field, "")
            continue
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{field} must be a non-empty string")
        merged[field] = value.strip()
    if merged["type"] not in THREAT_TYPES:
        raise ValidationError("Type must be url, email, or phone")
    if merged["artifact"] != existing.get("artifact") and artifact_exists(store, merged["artifact"]):
        raise Conflict("Artifact already exists")

    return store.update(
        config.THREATS_TABLE,
        key,
        "SET artifact = :artifact, #type = :type, description = :description, updatedAt = :updatedAt",
        values={
            ":artifact": merged["artifact"],
            ":type": merged["type"],
            ":description": merged["description"],
            ":updatedAt": _now(),
        },
        names={"#type": "type"},
        returnValues="ALL_NEW",
    )


def update_threat_status(store, notifier, user, threat_id, created_at, status):
    """Admin-only status change. Verifying sends the submitter a best-effort notification."""
    from botocore.exceptions import ClientError

    requireAdmin(user)
    if status not in THREAT_STATUSES:
        raise ValidationError("Status must be either 'verified' or 'unverified'")
    try:
        threat = store.update(
            config.THREATS_TABLE,
            {"threatId": threat_id, "createdAt": created_at},
            "SET #status = :status, updatedAt = :updatedAt",
            values={":status": status, ":updatedAt": _now()},
            names={"#status": "status"},
            condition="attribute_exists(threatId)",
            returnValues="ALL_NEW",
        )
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
            raise NotFound("Threat not found") from e
        raise

    result = {"message": "Threat status updated successfully", "threat": threat, "notificationSent": False}
    if status == "verified" and notifier is not None:
        best_effort = BestEffort()
        message_id = best_effort.run(
            "verification notification",
            notifications.send_verification_notification,
            store,
            notifier,
            threat_id,
            created_at,
        )
        result["notificationSent"] = not best_effort and message_id is not None
    return result
