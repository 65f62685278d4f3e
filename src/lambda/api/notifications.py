"""
Threat verification notifications over SNS.
Subscribing happens on every threat creation; SNS ignores duplicate email
subscriptions and only delivers to confirmed ones. Nothing here may fail the
request that triggered it, so callers run these through BestEffort.
"""
import logging
from datetime import datetime

from common import config
from common.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

VERIFIED_SUBJECT = "Your TrustNet threat report has been verified"

VERIFIED_TEMPLATE = """Hi {firstName},

Great news! Your digital threat report has been verified by our admin team.

Threat Details:
Artifact: {artifact}
Type: {type}
Description: {description}
Status: Verified

Your contribution helps keep our community safe from digital threats!

Best regards,
The TrustNet Team"""


class SnsNotifier:
    """Thin wrapper over one SNS topic."""

    def __init__(self, topic_arn=None, client=None, region=None):
        self.topic_arn = topic_arn if topic_arn is not None else config.SNS_TOPIC_ARN
        self._client = client
        self._region = region or config.AWS_REGION

    @property
    def client(self):
        if self._client is None:
            import boto3
            self._client = boto3.client("sns", region_name=self._region)
        return self._client

    def subscribe(self, email):
        """Email subscription; returns the SubscriptionArn (pending confirmation until the user confirms)."""
        if not self.topic_arn:
            logger.error("Cannot subscribe %s: SNS_TOPIC_ARN not set", email)
            return None
        resp = self.client.subscribe(
            TopicArn=self.topic_arn,
            Protocol="email",
            Endpoint=email,
            ReturnSubscriptionArn=True,
        )
        return resp.get("SubscriptionArn")

    def publish(self, subject, message, attributes=None):
        if not self.topic_arn:
            logger.error("Cannot publish %r: SNS_TOPIC_ARN not set", subject)
            return None
        message_attributes = {
            name: {"DataType": "String", "StringValue": str(value)}
            for name, value in (attributes or {}).items()
            if value
        }
        resp = self.client.publish(
            TopicArn=self.topic_arn,
            Subject=subject,
            Message=message,
            MessageAttributes=message_attributes,
        )
        return resp.get("MessageId")


def auto_subscribe(notifier, email):
    """Fire-and-forget subscribe. Errors are logged, never raised."""
    if not email:
        return None
    try:
        arn = notifier.subscribe(email)
        logger.info("auto-subscribed %s (%s)", email, arn)
        return arn
    except Exception as e:
        logger.warning("auto-subscribe failed for %s: %s", email, e)
        return None


def send_verification_notification(store, notifier, threat_id, created_at):
    """Tell the submitter their threat was verified. Raises NotFound on missing threat or user."""
    threat = store.get(config.THREATS_TABLE, {"threatId": threat_id, "createdAt": created_at})
    if not threat:
        raise NotFound(f"Threat not found: {threat_id}")
    submitted_by = threat.get("submittedBy", "")
    user = store.get(config.USERS_TABLE, {"userId": submitted_by}) if submitted_by else None
    if not user:
        raise NotFound(f"User not found: {submitted_by}")

    message = VERIFIED_TEMPLATE.format(
        firstName=user.get("firstName", ""),
        artifact=threat.get("artifact", ""),
        type=str(threat.get("type", "")).upper(),
        description=threat.get("description", ""),
    )
    message_id = notifier.publish(
        VERIFIED_SUBJECT,
        message,
        {"threatId": threat_id, "userId": submitted_by, "email": user.get("email", "")},
    )
    logger.info("verification notification for threat=%s to %s: %s", threat_id, user.get("email"), message_id)
    return message_id


def get_subscription_status(store, user_id):
    try:
        item = store.get(config.SUBSCRIPTIONS_TABLE, {"userId": user_id})
    except Exception as e:
        logger.warning("subscription status lookup failed for %s: %s", user_id, e)
        return {"subscribed": False}
    if not item:
        return {"subscribed": False}
    return {
        "subscribed": item.get("subscribed") is True,
        "email": item.get("email"),
        "subscriptionArn": item.get("subscriptionArn"),
    }


def subscribe_user(store, notifier, user_id, email):
    """Subscribe and remember the subscription. No-op when already subscribed."""
    status = get_subscription_status(store, user_id)
    if status["subscribed"]:
        logger.info("user %s already subscribed", user_id)
        return status
    arn = notifier.subscribe(email)
    if not arn:
        raise RuntimeError("Failed to get subscription ARN from SNS")
    now = datetime.utcnow().isoformat() + "Z"
    store.put(
        config.SUBSCRIPTIONS_TABLE,
        {
            "userId": user_id,
            "email": email,
            "subscriptionArn": arn,
            "subscribed": True,
            "createdAt": now,
            "updatedAt": now,
        },
    )
    return {"subscribed": True, "email": email, "subscriptionArn": arn}


def toggle_subscription(store, user_id, enabled):
    from botocore.exceptions import ClientError

    try:
        store.update(
            config.SUBSCRIPTIONS_TABLE,
            {"userId": user_id},
            "SET subscribed = :subscribed, updatedAt = :updatedAt",
            values={":subscribed": bool(enabled), ":updatedAt": datetime.utcnow().isoformat() + "Z"},
            condition="attribute_exists(userId)",
        )
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
            raise NotFound("Subscription not found") from e
        raise
    return {"subscribed": bool(enabled)}


def unsubscribe_by_token(store, user_id, token):
    """Email-link unsubscribe; the token is the stored subscription ARN."""
    status = get_subscription_status(store, user_id)
    if not status["subscribed"] or not token or status.get("subscriptionArn") != token:
        raise ValidationError("Invalid unsubscribe token")
    return toggle_subscription(store, user_id, False)
