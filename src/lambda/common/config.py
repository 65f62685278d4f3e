"""Environment configuration shared by the API Lambda."""
import os

AWS_REGION = os.environ.get("AWS_REGION", "ap-southeast-1")

THREATS_TABLE = os.environ.get("THREATS_TABLE", "digital-threats")
THREAT_LIKES_TABLE = os.environ.get("THREAT_LIKES_TABLE", "threat-likes")
USERS_TABLE = os.environ.get("USERS_TABLE", "users")
ARTICLES_TABLE = os.environ.get("ARTICLES_TABLE", "articles")
SCAM_REPORTS_TABLE = os.environ.get("SCAM_REPORTS_TABLE", "scam-reports")
SUBSCRIPTIONS_TABLE = os.environ.get("SUBSCRIPTIONS_TABLE", "threat-notification-subscriptions")

LIKES_BY_THREAT_INDEX = os.environ.get("LIKES_BY_THREAT_INDEX", "threatId-index")
THREATS_BY_ARTIFACT_INDEX = os.environ.get("THREATS_BY_ARTIFACT_INDEX", "artifact-createdAt-index")
THREATS_BY_VIEWABLE_INDEX = os.environ.get("THREATS_BY_VIEWABLE_INDEX", "viewable-createdAt-index")
THREATS_BY_SUBMITTER_INDEX = os.environ.get("THREATS_BY_SUBMITTER_INDEX", "submittedBy-createdAt-index")

MEDIA_BUCKET = os.environ.get("MEDIA_BUCKET", "")
SNS_TOPIC_ARN = os.environ.get("SNS_TOPIC_ARN", "")
JWT_SECRET = os.environ.get("JWT_SECRET", "")

ALLOWED_ORIGINS = [
    o.strip()
    for o in os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:8080").split(",")
    if o.strip()
]

# DynamoDB BatchWriteItem accepts at most 25 put/delete requests per call
BATCH_WRITE_LIMIT = 25

PROFILE_PICTURES_FOLDER = "profile-pictures"
ARTICLE_IMAGES_FOLDER = "article-images"
SCAM_REPORT_IMAGES_FOLDER = "scam-reports"
