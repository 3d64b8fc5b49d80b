"""
Document storage used by the API handlers.

Handlers never touch a database handle directly: they receive a
``DocumentStore`` through the ``get_store`` dependency. ``MongoStore`` talks
to MongoDB through motor; ``MemoryStore`` keeps collections in process and
understands the same subset of MongoDB filters, so it stands in for Mongo in
tests and in ``OVERCASTLY_STORE=memory`` runs.
"""
import copy
import re
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError, PyMongoError

from . import core
from .errors import ConflictError, InternalError

logger = logging.getLogger(__name__)

USERS = 'Users'
POSTS = 'Posts'

Sort = Sequence[Tuple[str, int]]


def parse_object_id(value: Any) -> Optional[ObjectId]:
    """Return ``value`` as an ObjectId, or None when it is not a valid id"""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


class DocumentStore:
    """Operations the handlers rely on. Filters are MongoDB-style dicts."""

    async def insert_one(self, collection: str, document: Dict) -> ObjectId:
        raise NotImplementedError

    async def find_one(self, collection: str, filter: Dict) -> Optional[Dict]:
        raise NotImplementedError

    async def find(self, collection: str, filter: Dict, sort: Optional[Sort] = None) -> List[Dict]:
        raise NotImplementedError

    async def update_one(self, collection: str, _id: ObjectId, set_fields: Dict,
                         unset_fields: Iterable[str] = ()) -> int:
        """Partial update by id, returns the number of matched documents"""
        raise NotImplementedError

    async def delete_one(self, collection: str, _id: ObjectId) -> int:
        raise NotImplementedError

    async def delete_many(self, collection: str, filter: Dict) -> int:
        raise NotImplementedError


@contextmanager
def _translate_errors(operation: str, collection: str):
    try:
        yield
    except DuplicateKeyError as e:
        raise ConflictError('Duplicate value for a unique field') from e
    except PyMongoError as e:
        logger.error(f"Mongo {operation} on {collection} failed: {e}")
        raise InternalError(f'Storage failure during {operation}') from e


class MongoStore(DocumentStore):
    def __init__(self, db):
        self.db = db

    async def insert_one(self, collection, document):
        with _translate_errors('insert', collection):
            result = await self.db[collection].insert_one(document)
        return result.inserted_id

    async def find_one(self, collection, filter):
        with _translate_errors('find_one', collection):
            return await self.db[collection].find_one(filter)

    async def find(self, collection, filter, sort=None):
        with _translate_errors('find', collection):
            cursor = self.db[collection].find(filter)
            if sort:
                cursor = cursor.sort(list(sort))
            return await cursor.to_list(length=None)

    async def update_one(self, collection, _id, set_fields, unset_fields=()):
        update = {}
        if set_fields:
            update['$set'] = set_fields
        unset_fields = list(unset_fields)
        if unset_fields:
            update['$unset'] = {field: '' for field in unset_fields}
        if not update:
            return 0
        with _translate_errors('update', collection):
            result = await self.db[collection].update_one({'_id': _id}, update)
        return result.matched_count

    async def delete_one(self, collection, _id):
        with _translate_errors('delete', collection):
            result = await self.db[collection].delete_one({'_id': _id})
        return result.deleted_count

    async def delete_many(self, collection, filter):
        with _translate_errors('delete_many', collection):
            result = await self.db[collection].delete_many(filter)
        return result.deleted_count

    async def ensure_indexes(self):
        await self.db[USERS].create_index('username', unique=True)
        await self.db[USERS].create_index('email', unique=True)
        await self.db[POSTS].create_index('replyTo')


def _equals(value, target) -> bool:
    # mongo equality on an array field matches any member
    if isinstance(value, list) and not isinstance(target, list):
        return target in value
    return value == target


def _regex_matches(value, pattern: str, options: str) -> bool:
    flags = re.IGNORECASE if 'i' in options else 0
    candidates = value if isinstance(value, list) else [value]
    return any(isinstance(c, str) and re.search(pattern, c, flags) for c in candidates)


def _matches_condition(document: Dict, key: str, condition) -> bool:
    present = key in document
    value = document.get(key)
    if not (isinstance(condition, dict) and condition and all(k.startswith('$') for k in condition)):
        return _equals(value, condition)
    for op, arg in condition.items():
        if op == '$exists':
            if present != bool(arg):
                return False
        elif op == '$in':
            if not any(_equals(value, a) for a in arg):
                return False
        elif op == '$ne':
            if _equals(value, arg):
                return False
        elif op == '$regex':
            if not _regex_matches(value, arg, condition.get('$options', '')):
                return False
        elif op == '$options':
            continue
        else:
            raise ValueError(f'Unsupported filter operator {op}')
    return True


def matches(document: Dict, filter: Dict) -> bool:
    for key, condition in filter.items():
        if key == '$or':
            if not any(matches(document, sub) for sub in condition):
                return False
        elif not _matches_condition(document, key, condition):
            return False
    return True


class MemoryStore(DocumentStore):
    """In-process store with the same filter semantics as MongoStore"""

    def __init__(self):
        self.collections: Dict[str, List[Dict]] = {}
        # (collection, field) pairs that must stay unique
        self.unique_fields = {(USERS, 'username'), (USERS, 'email')}

    def _docs(self, collection):
        return self.collections.setdefault(collection, [])

    async def insert_one(self, collection, document):
        docs = self._docs(collection)
        for (coll, field) in self.unique_fields:
            if coll == collection and field in document:
                if any(d.get(field) == document[field] for d in docs):
                    raise ConflictError('Duplicate value for a unique field')
        document.setdefault('_id', ObjectId())
        docs.append(copy.deepcopy(document))
        return document['_id']

    async def find_one(self, collection, filter):
        for doc in self._docs(collection):
            if matches(doc, filter):
                return copy.deepcopy(doc)
        return None

    async def find(self, collection, filter, sort=None):
        found = [copy.deepcopy(d) for d in self._docs(collection) if matches(d, filter)]
        for key, direction in reversed(list(sort or [])):
            found.sort(key=lambda d: (d.get(key) is not None, d.get(key)), reverse=direction < 0)
        return found

    async def update_one(self, collection, _id, set_fields, unset_fields=()):
        for doc in self._docs(collection):
            if doc['_id'] == _id:
                doc.update(copy.deepcopy(set_fields))
                for field in unset_fields:
                    doc.pop(field, None)
                return 1
        return 0

    async def delete_one(self, collection, _id):
        docs = self._docs(collection)
        for i, doc in enumerate(docs):
            if doc['_id'] == _id:
                del docs[i]
                return 1
        return 0

    async def delete_many(self, collection, filter):
        docs = self._docs(collection)
        keep = [d for d in docs if not matches(d, filter)]
        deleted = len(docs) - len(keep)
        self.collections[collection] = keep
        return deleted

    def count(self, collection: str) -> int:
        return len(self._docs(collection))


def get_store() -> DocumentStore:
    """FastAPI dependency returning the store opened at startup"""
    if core.STORE is None:
        raise InternalError('Storage unavailable')
    return core.STORE
