"""
DynamoDB storage adapter. Speaks plain Python values and hides the attribute
value format of the low-level client.
"""
import logging
from decimal import Decimal

from common import config
from common.errors import CancellationReason, TransientStoreConflict

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _toDynamo(value):
    """Prepare a Python value for TypeSerializer (floats must be Decimal)."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _toDynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_toDynamo(v) for v in value]
    return value


def _fromDynamo(value):
    """Turn TypeDeserializer output into JSON-friendly values."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _fromDynamo(v) for k, v in value.items()}
    if isinstance(value, (list, set)):
        return [_fromDynamo(v) for v in value]
    return value


class DynamoStore:
    """get/put/update/delete/query/scan/batchWrite/transactWrite over one client."""

    def __init__(self, client=None, region=None):
        from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

        if client is None:
            import boto3
            client = boto3.client("dynamodb", region_name=region or config.AWS_REGION)
        self.client = client
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def _serialize(self, doc):
        if doc is None:
            return None
        return {k: self._serializer.serialize(_toDynamo(v)) for k, v in doc.items()}

    def _deserialize(self, item):
        if item is None:
            return None
        return {k: _fromDynamo(self._deserializer.deserialize(v)) for k, v in item.items()}

    def _expressionArgs(self, condition=None, names=None, values=None):
        kwargs = {}
        if condition:
            kwargs["ConditionExpression"] = condition
        if names:
            kwargs["ExpressionAttributeNames"] = names
        if values:
            kwargs["ExpressionAttributeValues"] = self._serialize(values)
        return kwargs

    def get(self, table, key):
        resp = self.client.get_item(TableName=table, Key=self._serialize(key))
        return self._deserialize(resp.get("Item"))

    def put(self, table, item, condition=None, names=None, values=None):
        self.client.put_item(
            TableName=table,
            Item=self._serialize(item),
            **self._expressionArgs(condition, names, values),
        )

    def update(self, table, key, expression, values=None, names=None, condition=None, returnValues=None):
        kwargs = self._expressionArgs(condition, names, values)
        if returnValues:
            kwargs["ReturnValues"] = returnValues
        resp = self.client.update_item(
            TableName=table,
            Key=self._serialize(key),
            UpdateExpression=expression,
            **kwargs,
        )
        return self._deserialize(resp.get("Attributes")) or {}

    def delete(self, table, key, condition=None, names=None, values=None):
        self.client.delete_item(
            TableName=table,
            Key=self._serialize(key),
            **self._expressionArgs(condition, names, values),
        )

    def query(self, table, keyCondition, values, index=None, names=None, projection=None, limit=None, forward=True):
        """Query a table or index. Follows pagination unless limit is set."""
        kwargs = {
            "TableName": table,
            "KeyConditionExpression": keyCondition,
            "ExpressionAttributeValues": self._serialize(values),
            "ScanIndexForward": forward,
        }
        if index:
            kwargs["IndexName"] = index
        if names:
            kwargs["ExpressionAttributeNames"] = names
        if projection:
            kwargs["ProjectionExpression"] = projection
        if limit:
            kwargs["Limit"] = limit
        items = []
        while True:
            resp = self.client.query(**kwargs)
            items.extend(self._deserialize(i) for i in resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key or limit:
                break
            kwargs["ExclusiveStartKey"] = last_key
        return items

    def scan(self, table, filterExpression=None, values=None, names=None):
        """Full table scan with an optional filter, following pagination."""
        kwargs = {"TableName": table}
        if filterExpression:
            kwargs["FilterExpression"] = filterExpression
        if values:
            kwargs["ExpressionAttributeValues"] = self._serialize(values)
        if names:
            kwargs["ExpressionAttributeNames"] = names
        items = []
        while True:
            resp = self.client.scan(**kwargs)
            items.extend(self._deserialize(i) for i in resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        return items

    def batchWrite(self, requestItems):
        """One BatchWriteItem call. Returns the unprocessed requests (empty dict when all went through).

        requestItems: {table: [{"DeleteRequest": {"Key": {...}}} | {"PutRequest": {"Item": {...}}}]}
        """
        serialized = {}
        for table, requests in requestItems.items():
            out = []
            for req in requests:
                if "DeleteRequest" in req:
                    out.append({"DeleteRequest": {"Key": self._serialize(req["DeleteRequest"]["Key"])}})
                elif "PutRequest" in req:
                    out.append({"PutRequest": {"Item": self._serialize(req["PutRequest"]["Item"])}})
            serialized[table] = out
        resp = self.client.batch_write_item(RequestItems=serialized)
        unprocessed = {}
        for table, requests in (resp.get("UnprocessedItems") or {}).items():
            out = []
            for req in requests:
                if "DeleteRequest" in req:
                    out.append({"DeleteRequest": {"Key": self._deserialize(req["DeleteRequest"]["Key"])}})
                elif "PutRequest" in req:
                    out.append({"PutRequest": {"Item": self._deserialize(req["PutRequest"]["Item"])}})
            if out:
                unprocessed[table] = out
        return unprocessed

    def transactWrite(self, items):
        """All-or-nothing write of Put/Update/Delete/ConditionCheck items.

        Raises TransientStoreConflict with per-item reasons when DynamoDB cancels
        the transaction. Other client errors propagate.
        """
        from botocore.exceptions import ClientError

        transact_items = []
        for op in items:
            (kind, request), = op.items()
            request = dict(request)
            for field in ("Key", "Item", "ExpressionAttributeValues"):
                if field in request:
                    request[field] = self._serialize(request[field])
            transact_items.append({kind: request})
        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "TransactionCanceledException":
                raise
            reasons = [
                CancellationReason(r.get("Code"), self._deserialize(r.get("Item")))
                for r in e.response.get("CancellationReasons", [])
            ]
            logger.info("transaction cancelled: %s", reasons)
            raise TransientStoreConflict(reasons) from e
