"""S3 media bucket access used when records owning images are removed."""
import logging

from common import config

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def constructKey(fileName, folderPath=None):
    """Join a bare file name with its folder; keys that already contain / pass through."""
    if "/" in fileName:
        return fileName
    if not folderPath:
        return fileName
    return f"{folderPath.strip('/')}/{fileName}"


class S3BlobStore:
    def __init__(self, bucket=None, client=None, region=None):
        self.bucket = bucket if bucket is not None else config.MEDIA_BUCKET
        if client is None:
            import boto3
            client = boto3.client("s3", region_name=region or config.AWS_REGION)
        self.client = client

    def deleteObject(self, fileNameOrKey, folderPath=None):
        """Delete one object. Raises when the bucket is unset or S3 fails."""
        if not self.bucket:
            raise RuntimeError("MEDIA_BUCKET not set")
        key = constructKey(fileNameOrKey, folderPath)
        self.client.delete_object(Bucket=self.bucket, Key=key)
        logger.info("deleted s3://%s/%s", self.bucket, key)
        return key
