# =============================================================================
# Document Store
# =============================================================================
# Keyed document collections used by the handlers.
#
# Backends:
#   DynamoCollection - one DynamoDB table per collection (boto3 Table resource)
#   MemoryCollection - process-local dict, for local runs and tests
#
# Filtering, sorting and paging are evaluated client-side on top of a full
# scan, which keeps both backends behaviourally identical.
# =============================================================================

import copy
import logging
import threading
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Predicate = Callable[[Document], bool]

POSTS = "posts"
ADMIN = "admin"
SUBSCRIPTIONS = "subscriptions"
EMAILS = "emails"

# Collection name -> key attribute
COLLECTION_KEYS = {
    POSTS: "id",
    ADMIN: "email",
    SUBSCRIPTIONS: "email",
    EMAILS: "email",
}


# =============================================================================
# HELPER: DynamoDB number conversion
# =============================================================================
def to_plain(value: Any) -> Any:
    """Convert DynamoDB Decimals back into ints/floats, recursively."""
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_plain(v) for v in value]
    return value


def to_dynamo(value: Any) -> Any:
    """DynamoDB rejects floats. Convert them to Decimal, recursively."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_dynamo(v) for v in value]
    return value


# =============================================================================
# COLLECTION BASE
# =============================================================================
class Collection:
    """
    Keyed document collection.

    Backends implement get/put/update/scan; querying is shared.
    """

    def __init__(self, name: str, key: str):
        self.name = name
        self.key = key

    # -- backend primitives ---------------------------------------------------

    def get(self, key_value: Any) -> Optional[Document]:
        raise NotImplementedError

    def insert(self, doc: Document) -> Document:
        raise NotImplementedError

    def insert_if_absent(self, doc: Document) -> bool:
        """Insert atomically unless a document with the same key exists."""
        raise NotImplementedError

    def update(self, key_value: Any, set_fields: Dict[str, Any] = None,
               increment: Dict[str, int] = None, must_exist: bool = True) -> Optional[Document]:
        """
        Apply `$set`/increment style changes and return the new document.

        Returns None when `must_exist` is set and the document is missing.
        """
        raise NotImplementedError

    def scan(self) -> Iterator[Document]:
        raise NotImplementedError

    # -- queries ----------------------------------------------------------------

    def find(self, where: Predicate = None, sort_by: str = None, descending: bool = False,
             skip: int = 0, limit: int = None) -> List[Document]:
        """Filtered list with sort/skip/limit."""
        docs = [d for d in self.scan() if where is None or where(d)]
        if sort_by:
            present = [d for d in docs if d.get(sort_by) is not None]
            missing = [d for d in docs if d.get(sort_by) is None]
            present.sort(key=lambda d: d[sort_by], reverse=descending)
            # Documents without the sort attribute go last
            docs = present + missing
        skip = max(int(skip or 0), 0)
        if limit is not None:
            return docs[skip:skip + max(int(limit), 0)]
        return docs[skip:]

    def count(self, where: Predicate = None) -> int:
        return sum(1 for d in self.scan() if where is None or where(d))

    def find_one_and_update(self, key_value: Any, set_fields: Dict[str, Any]) -> Optional[Document]:
        return self.update(key_value, set_fields=set_fields, must_exist=True)


# =============================================================================
# MEMORY BACKEND
# =============================================================================
class MemoryCollection(Collection):

    def __init__(self, name: str, key: str):
        super().__init__(name, key)
        self._docs: Dict[Any, Document] = {}
        self._lock = threading.Lock()

    def get(self, key_value):
        doc = self._docs.get(key_value)
        return copy.deepcopy(doc) if doc is not None else None

    def insert(self, doc):
        with self._lock:
            self._docs[doc[self.key]] = copy.deepcopy(doc)
        return doc

    def insert_if_absent(self, doc):
        with self._lock:
            if doc[self.key] in self._docs:
                return False
            self._docs[doc[self.key]] = copy.deepcopy(doc)
            return True

    def update(self, key_value, set_fields=None, increment=None, must_exist=True):
        with self._lock:
            doc = self._docs.get(key_value)
            if doc is None:
                if must_exist:
                    return None
                doc = {self.key: key_value}
                self._docs[key_value] = doc
            for field, value in (set_fields or {}).items():
                doc[field] = copy.deepcopy(value)
            for field, amount in (increment or {}).items():
                doc[field] = (doc.get(field) or 0) + amount
            return copy.deepcopy(doc)

    def scan(self):
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._docs.values()]
        return iter(docs)


# =============================================================================
# DYNAMODB BACKEND
# =============================================================================
class DynamoCollection(Collection):

    def __init__(self, name: str, key: str, table):
        super().__init__(name, key)
        self.table = table

    def get(self, key_value):
        response = self.table.get_item(Key={self.key: key_value})
        item = response.get("Item")
        return to_plain(item) if item is not None else None

    def insert(self, doc):
        self.table.put_item(Item=to_dynamo(doc))
        return doc

    def insert_if_absent(self, doc):
        try:
            self.table.put_item(
                Item=to_dynamo(doc),
                ConditionExpression=Attr(self.key).not_exists(),
            )
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            raise

    def update(self, key_value, set_fields=None, increment=None, must_exist=True):
        set_fields = {k: v for k, v in (set_fields or {}).items() if k != self.key}
        increment = increment or {}
        if not set_fields and not increment:
            return self.get(key_value)

        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        set_parts: List[str] = []
        add_parts: List[str] = []

        for i, (field, value) in enumerate(set_fields.items()):
            names[f"#s{i}"] = field
            values[f":s{i}"] = to_dynamo(value)
            set_parts.append(f"#s{i} = :s{i}")
        for i, (field, amount) in enumerate(increment.items()):
            names[f"#a{i}"] = field
            values[f":a{i}"] = to_dynamo(amount)
            add_parts.append(f"#a{i} :a{i}")

        expression = []
        if set_parts:
            expression.append("SET " + ", ".join(set_parts))
        if add_parts:
            expression.append("ADD " + ", ".join(add_parts))

        kwargs = {
            "Key": {self.key: key_value},
            "UpdateExpression": " ".join(expression),
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
            "ReturnValues": "ALL_NEW",
        }
        if must_exist:
            kwargs["ConditionExpression"] = Attr(self.key).exists()

        try:
            response = self.table.update_item(**kwargs)
        except ClientError as e:
            if must_exist and e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return None
            raise
        return to_plain(response.get("Attributes") or {})

    def scan(self):
        kwargs: Dict[str, Any] = {}
        while True:
            response = self.table.scan(**kwargs)
            for item in response.get("Items", []):
                yield to_plain(item)
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return
            kwargs["ExclusiveStartKey"] = last_key


# =============================================================================
# DOCUMENT STORE
# =============================================================================
class DocumentStore:
    """Named collections sharing one backend."""

    def __init__(self, collections: Dict[str, Collection]):
        self._collections = dict(collections)

    def collection(self, name: str) -> Collection:
        try:
            return self._collections[name]
        except KeyError:
            raise KeyError(f"Unknown collection: {name}") from None

    @property
    def posts(self) -> Collection:
        return self.collection(POSTS)

    @property
    def admin(self) -> Collection:
        return self.collection(ADMIN)

    @property
    def subscriptions(self) -> Collection:
        return self.collection(SUBSCRIPTIONS)

    @property
    def emails(self) -> Collection:
        return self.collection(EMAILS)

    @classmethod
    def in_memory(cls) -> "DocumentStore":
        return cls({name: MemoryCollection(name, key) for name, key in COLLECTION_KEYS.items()})

    @classmethod
    def dynamodb(cls, resource, table_names: Dict[str, str]) -> "DocumentStore":
        """
        Build a store over DynamoDB tables.

        Args:
            resource: boto3 DynamoDB service resource
            table_names: collection name -> table name
        """
        collections = {}
        for name, key in COLLECTION_KEYS.items():
            table_name = table_names.get(name, name)
            logger.info(f"Binding collection {name} to DynamoDB table {table_name}")
            collections[name] = DynamoCollection(name, key, resource.Table(table_name))
        return cls(collections)
