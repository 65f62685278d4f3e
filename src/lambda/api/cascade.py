"""
Cascading deletes for threats and users.

Dependents are gathered first, then removed with multi-table BatchWriteItem
calls of at most 25 requests each, and the root record is deleted last.
Failures while gathering or batch deleting dependents never stop the root
delete; they come back as warnings on the CascadeResult.
"""
import logging
from collections import Counter

from common import config
from common.batching import BestEffort, chunked
from common.errors import NotFound

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class DeletableRecord:
    """A record to remove, tagged with the table it lives in."""

    __slots__ = ("table", "key")

    def __init__(self, table, key):
        self.table = table
        self.key = dict(key)

    def identity(self):
        return (self.table, tuple(sorted(self.key.items())))

    def delete_request(self):
        return {"DeleteRequest": {"Key": dict(self.key)}}

    def __eq__(self, other):
        return isinstance(other, DeletableRecord) and self.identity() == other.identity()

    def __hash__(self):
        return hash(self.identity())

    def __repr__(self):
        return f"DeletableRecord({self.table!r}, {self.key!r})"


def threat_record(threat):
    return DeletableRecord(config.THREATS_TABLE, {"threatId": threat["threatId"], "createdAt": threat["createdAt"]})


def like_record(like):
    return DeletableRecord(config.THREAT_LIKES_TABLE, {"userId": like["userId"], "threatId": like["threatId"]})


def article_record(article):
    return DeletableRecord(config.ARTICLES_TABLE, {"articleId": article["articleId"]})


def report_record(report):
    return DeletableRecord(config.SCAM_REPORTS_TABLE, {"reportId": report["reportId"], "createdAt": report["createdAt"]})


class CascadeResult:
    def __init__(self, message, deleted=None, warnings=None):
        self.message = message
        self.deleted = dict(deleted or {})
        self.warnings = list(warnings or [])

    @property
    def warning(self):
        return "; ".join(self.warnings) if self.warnings else None

    def to_dict(self):
        out = {"message": self.message, "deleted": self.deleted}
        if self.warnings:
            out["warning"] = self.warning
        return out

    def __repr__(self):
        return f"CascadeResult({self.message!r}, deleted={self.deleted!r}, warnings={self.warnings!r})"


def group_by_table(records):
    """Build a BatchWriteItem RequestItems map from tagged records."""
    request_items = {}
    for record in records:
        request_items.setdefault(record.table, []).append(record.delete_request())
    return request_items


def batch_delete(store, records, best_effort, size=None):
    """Delete records in chunks spanning tables. Returns per-table counts of requests that went through."""
    deleted = Counter()
    unique = list(dict.fromkeys(records))
    for chunk in chunked(unique, size):
        request_items = group_by_table(chunk)
        unprocessed = best_effort.run("batch delete", store.batchWrite, request_items)
        if unprocessed is None:
            # the call itself failed; nothing in this chunk is known to be gone
            continue
        left = Counter({table: len(reqs) for table, reqs in unprocessed.items()})
        for table, reqs in request_items.items():
            done = len(reqs) - left.get(table, 0)
            if done:
                deleted[table] += done
        if left:
            best_effort.warn(
                "Unprocessed deletes: "
                + ", ".join(f"{table}={count}" for table, count in sorted(left.items()))
            )
    return dict(deleted)


def _likes_for_threat(store, threat_id):
    return store.query(
        config.THREAT_LIKES_TABLE,
        "threatId = :threatId",
        {":threatId": threat_id},
        index=config.LIKES_BY_THREAT_INDEX,
        projection="userId, threatId",
    )


def delete_threat(store, threat_id, created_at):
    """Delete a threat and every like pointing at it."""
    key = {"threatId": threat_id, "createdAt": created_at}
    if not store.get(config.THREATS_TABLE, key):
        raise NotFound("Threat not found")

    best_effort = BestEffort()
    likes = best_effort.run("threat-likes lookup", _likes_for_threat, store, threat_id, default=[])
    deleted = batch_delete(store, [like_record(like) for like in likes], best_effort)

    store.delete(config.THREATS_TABLE, key)
    deleted[config.THREATS_TABLE] = deleted.get(config.THREATS_TABLE, 0) + 1
    logger.info("deleted threat=%s likes=%d warnings=%d", threat_id, len(likes), len(best_effort.warnings))

    if best_effort:
        return CascadeResult("Threat deleted, but some threat-likes may remain.", deleted, best_effort.warnings)
    return CascadeResult("Threat deleted successfully", deleted)


def _gather_user_dependents(store, blobs, user_id, best_effort):
    """Collect every record owned by or pointing at the user's data, removing images on the way."""
    records = []

    threats = best_effort.run(
        "threats lookup",
        store.scan,
        config.THREATS_TABLE,
        "submittedBy = :userId",
        {":userId": user_id},
        default=[],
    )
    for threat in threats:
        if not threat.get("threatId"):
            continue
        records.append(threat_record(threat))
        # other users' likes on this threat would dangle once it is gone
        orphans = best_effort.run(
            f"threat-likes lookup for {threat['threatId']}",
            _likes_for_threat,
            store,
            threat["threatId"],
            default=[],
        )
        records.extend(like_record(like) for like in orphans)

    own_likes = best_effort.run(
        "own threat-likes lookup",
        store.query,
        config.THREAT_LIKES_TABLE,
        "userId = :userId",
        {":userId": user_id},
        default=[],
    )
    records.extend(like_record(like) for like in own_likes)

    articles = best_effort.run(
        "articles lookup",
        store.scan,
        config.ARTICLES_TABLE,
        "userId = :userId",
        {":userId": user_id},
        default=[],
    )
    for article in articles:
        if article.get("coverImage") and blobs is not None:
            best_effort.run(
                f"article image {article['coverImage']}",
                blobs.deleteObject,
                article["coverImage"],
                config.ARTICLE_IMAGES_FOLDER,
            )
        records.append(article_record(article))

    reports = best_effort.run(
        "scam-reports lookup",
        store.scan,
        config.SCAM_REPORTS_TABLE,
        "userId = :userId",
        {":userId": user_id},
        default=[],
    )
    for report in reports:
        if report.get("image") and blobs is not None:
            best_effort.run(
                f"report image {report['image']}",
                blobs.deleteObject,
                report["image"],
                config.SCAM_REPORT_IMAGES_FOLDER,
            )
        records.append(report_record(report))

    return records


def delete_user(store, blobs, user_id):
    """Delete a user and everything they own.

    The user record goes away even when some dependents could not be removed;
    what was left behind is reported in the result warnings.
    """
    user = store.get(config.USERS_TABLE, {"userId": user_id})
    if not user:
        raise NotFound("User not found")

    best_effort = BestEffort()
    if user.get("picture") and blobs is not None:
        best_effort.run("profile picture", blobs.deleteObject, user["picture"], config.PROFILE_PICTURES_FOLDER)

    records = _gather_user_dependents(store, blobs, user_id, best_effort)
    deleted = batch_delete(store, records, best_effort)

    store.delete(config.USERS_TABLE, {"userId": user_id})
    deleted[config.USERS_TABLE] = 1
    logger.info("deleted user=%s dependents=%d warnings=%d", user_id, len(records), len(best_effort.warnings))

    if best_effort:
        return CascadeResult("User deleted, but some associated data may remain.", deleted, best_effort.warnings)
    return CascadeResult("User and all associated data deleted successfully", deleted)
