"""
Threat like/unlike. The likes counter on a threat and the membership rows in
the threat-likes table only ever change together, inside one DynamoDB
transaction, so a user can move a threat's count by at most one.
"""
import enum
import logging

from common import config
from common.errors import Conflict, NotFound, TransientStoreConflict

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# Positions of the threat counter update and the membership write inside the like/unlike transactions
_THREAT_OP = 0
_MEMBERSHIP_OP = 1

# Transactions cancelled for reasons other than a guard (e.g. TransactionConflict) are retried this many times
_MAX_ATTEMPTS = 3


class LikeOutcome(enum.Enum):
    LIKED = "Liked successfully"
    ALREADY_LIKED = "Already liked"
    UNLIKED = "Unliked successfully"
    ALREADY_UNLIKED = "Already unliked"


class LikeResult:
    def __init__(self, outcome, threat_id):
        self.outcome = outcome
        self.threat_id = threat_id

    @property
    def message(self):
        return self.outcome.value

    @property
    def changed(self):
        return self.outcome in (LikeOutcome.LIKED, LikeOutcome.UNLIKED)

    def to_dict(self):
        return {"message": self.message, "threatId": self.threat_id}

    def __eq__(self, other):
        return isinstance(other, LikeResult) and (self.outcome, self.threat_id) == (other.outcome, other.threat_id)

    def __repr__(self):
        return f"LikeResult({self.outcome.name}, {self.threat_id!r})"


def _like_key(user_id, threat_id):
    return {"userId": user_id, "threatId": threat_id}


def _like_ops(user_id, threat_id, created_at):
    return [
        {
            "Update": {
                "TableName": config.THREATS_TABLE,
                "Key": {"threatId": threat_id, "createdAt": created_at},
                "UpdateExpression": "SET likes = if_not_exists(likes, :zero) + :inc",
                "ExpressionAttributeValues": {":inc": 1, ":zero": 0},
                "ConditionExpression": "attribute_exists(threatId) AND attribute_exists(createdAt)",
            }
        },
        {
            "Put": {
                "TableName": config.THREAT_LIKES_TABLE,
                "Item": {"userId": user_id, "threatId": threat_id, "createdAt": created_at},
                "ConditionExpression": "attribute_not_exists(userId) AND attribute_not_exists(threatId)",
            }
        },
    ]


def _unlike_ops(user_id, threat_id, created_at):
    return [
        {
            "Update": {
                "TableName": config.THREATS_TABLE,
                "Key": {"threatId": threat_id, "createdAt": created_at},
                "UpdateExpression": "SET likes = likes - :dec",
                "ExpressionAttributeValues": {":dec": 1, ":zero": 0},
                "ConditionExpression": (
                    "attribute_exists(threatId) AND attribute_exists(createdAt) AND likes > :zero"
                ),
                "ReturnValuesOnConditionCheckFailure": "ALL_OLD",
            }
        },
        {
            "Delete": {
                "TableName": config.THREAT_LIKES_TABLE,
                "Key": _like_key(user_id, threat_id),
                "ConditionExpression": "attribute_exists(userId) AND attribute_exists(threatId)",
            }
        },
    ]


def like_threat(store, user_id, threat_id, created_at):
    """Like a threat once. Repeats resolve to ALREADY_LIKED.

    A cancellation that neither guard explains (another writer touching the
    threat at the same moment) re-reads the membership row and tries again.
    Raises NotFound when the threat does not exist (or was deleted meanwhile),
    and Conflict when contention outlasts the retries.
    """
    for attempt in range(1, _MAX_ATTEMPTS + 1):
        if store.get(config.THREAT_LIKES_TABLE, _like_key(user_id, threat_id)):
            return LikeResult(LikeOutcome.ALREADY_LIKED, threat_id)
        try:
            store.transactWrite(_like_ops(user_id, threat_id, created_at))
        except TransientStoreConflict as e:
            if e.failedAt(_THREAT_OP):
                raise NotFound("Threat not found") from e
            if e.failedAt(_MEMBERSHIP_OP):
                logger.info("like race for user=%s threat=%s: row already present", user_id, threat_id)
                return LikeResult(LikeOutcome.ALREADY_LIKED, threat_id)
            logger.warning("like transaction conflict user=%s threat=%s attempt=%d: %s",
                           user_id, threat_id, attempt, e.reasons)
            continue
        logger.info("user=%s liked threat=%s", user_id, threat_id)
        return LikeResult(LikeOutcome.LIKED, threat_id)
    raise Conflict("Threat is being updated by others, please retry")


def unlike_threat(store, user_id, threat_id, created_at):
    """Remove a like once. The counter never drops below zero.

    Same retry rule as like_threat. Raises NotFound when the threat does not
    exist, and Conflict when contention outlasts the retries.
    """
    for attempt in range(1, _MAX_ATTEMPTS + 1):
        if not store.get(config.THREAT_LIKES_TABLE, _like_key(user_id, threat_id)):
            return LikeResult(LikeOutcome.ALREADY_UNLIKED, threat_id)
        try:
            store.transactWrite(_unlike_ops(user_id, threat_id, created_at))
        except TransientStoreConflict as e:
            reason = e.reason(_THREAT_OP)
            if reason is not None and reason.conditionFailed:
                # no old image means the threat row itself is gone; otherwise likes is already 0
                if not reason.item:
                    raise NotFound("Threat not found") from e
                return LikeResult(LikeOutcome.ALREADY_UNLIKED, threat_id)
            if e.failedAt(_MEMBERSHIP_OP):
                logger.info("unlike race for user=%s threat=%s: row already gone", user_id, threat_id)
                return LikeResult(LikeOutcome.ALREADY_UNLIKED, threat_id)
            logger.warning("unlike transaction conflict user=%s threat=%s attempt=%d: %s",
                           user_id, threat_id, attempt, e.reasons)
            continue
        logger.info("user=%s unliked threat=%s", user_id, threat_id)
        return LikeResult(LikeOutcome.UNLIKED, threat_id)
    raise Conflict("Threat is being updated by others, please retry")


def get_like_status(store, user_id, threat_id):
    return store.get(config.THREAT_LIKES_TABLE, _like_key(user_id, threat_id)) is not None


def list_liked_threats(store, user_id):
    """Threats the user currently likes, in the order the likes come back."""
    likes = store.query(
        config.THREAT_LIKES_TABLE,
        "userId = :uid",
        {":uid": user_id},
    )
    threats = []
    seen = set()
    for like in likes:
        threat_id = like.get("threatId")
        created_at = like.get("createdAt")
        if not threat_id or threat_id in seen:
            continue
        seen.add(threat_id)
        if created_at:
            threat = store.get(config.THREATS_TABLE, {"threatId": threat_id, "createdAt": created_at})
            if threat:
                threats.append(threat)
            continue
        threats.extend(store.query(config.THREATS_TABLE, "threatId = :tid", {":tid": threat_id}))
    return threats
