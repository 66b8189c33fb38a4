"""
Account and catalog stores.

Two backends share one interface: MongoDB (when DATABASE_URL is set) and an
in-process memory store used for local runs without a database and by the
test suite. Mongo failures surface as StoreError.
"""

import functools
import logging
import threading
from typing import Dict, Iterable, List, NamedTuple, Optional, Type

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from catalog import ProductQuery
from database import canonical_id, from_document, object_id, to_document
from errors import StoreError
from schemas import Owner, Product, User

logger = logging.getLogger(__name__)

# products are listed without their image payload
_NO_IMAGE = {"image": 0}


def _wrap_store_errors(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except PyMongoError as e:
            logger.error("%s.%s failed: %s", type(self).__name__, method.__name__, e)
            raise StoreError("The store is unavailable, please try again") from e
    return wrapper


# MongoDB backend

class MongoAccountStore:
    def __init__(self, database: Database, collection: str = "user", model: Type = User):
        self.collection = database[collection]
        self.model = model

    def ensure_indexes(self):
        try:
            self.collection.create_index([("email", ASCENDING)], unique=True)
        except PyMongoError as e:
            logger.warning("Unable to ensure email index on %s: %s", self.collection.name, e)

    def _load(self, doc):
        return self.model(**from_document(doc)) if doc else None

    def _dump(self, account) -> dict:
        doc = to_document(account)
        # cart references are stored as ObjectIds, like any other reference
        for line in doc.get("cart", []):
            oid = object_id(line.get("product"))
            if oid is not None:
                line["product"] = oid
        return doc

    @_wrap_store_errors
    def find_by_email(self, email: str):
        return self._load(self.collection.find_one({"email": email}))

    @_wrap_store_errors
    def exists(self, email: str) -> bool:
        return self.collection.count_documents({"email": email}, limit=1) > 0

    @_wrap_store_errors
    def create(self, account):
        result = self.collection.insert_one(self._dump(account))
        return account.model_copy(update={"id": str(result.inserted_id)})

    @_wrap_store_errors
    def save(self, account) -> None:
        oid = object_id(account.id)
        if oid is None:
            raise StoreError("Cannot save a record that was never created")
        result = self.collection.replace_one({"_id": oid}, self._dump(account))
        if result.matched_count == 0:
            raise StoreError("Record no longer exists")

    @_wrap_store_errors
    def count(self) -> int:
        return self.collection.count_documents({})

    @_wrap_store_errors
    def list_all(self) -> list:
        return [self._load(doc) for doc in self.collection.find({})]


class MongoCatalogStore:
    def __init__(self, database: Database, collection: str = "product"):
        self.collection = database[collection]

    @staticmethod
    def _load(doc) -> Optional[Product]:
        return Product(**from_document(doc)) if doc else None

    @_wrap_store_errors
    def find_by_id(self, product_id: str, with_image: bool = False) -> Optional[Product]:
        oid = object_id(product_id)
        if oid is None:
            return None
        projection = None if with_image else _NO_IMAGE
        return self._load(self.collection.find_one({"_id": oid}, projection))

    @_wrap_store_errors
    def find_many(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        oids = list({oid for oid in map(object_id, product_ids) if oid is not None})
        if not oids:
            return {}
        docs = self.collection.find({"_id": {"$in": oids}}, _NO_IMAGE)
        return {p.id: p for p in map(self._load, docs)}

    @_wrap_store_errors
    def find(self, query: ProductQuery) -> List[Product]:
        cursor = self.collection.find(query.mongo_filter(), _NO_IMAGE).sort(query.mongo_sort())
        return [self._load(doc) for doc in cursor]

    @_wrap_store_errors
    def list_all(self) -> List[Product]:
        return [self._load(doc) for doc in self.collection.find({}, _NO_IMAGE)]

    @_wrap_store_errors
    def create(self, product: Product) -> Product:
        result = self.collection.insert_one(to_document(product))
        return product.model_copy(update={"id": str(result.inserted_id)})

    @_wrap_store_errors
    def update(self, product_id: str, fields: dict) -> Optional[Product]:
        oid = object_id(product_id)
        if oid is None:
            return None
        doc = self.collection.find_one_and_update(
            {"_id": oid}, {"$set": fields}, projection=_NO_IMAGE, return_document=ReturnDocument.AFTER
        )
        return self._load(doc)

    @_wrap_store_errors
    def delete(self, product_id: str) -> bool:
        oid = object_id(product_id)
        if oid is None:
            return False
        return self.collection.delete_one({"_id": oid}).deleted_count > 0


# In-memory backend

class MemoryAccountStore:
    def __init__(self, model: Type = User):
        self.model = model
        self._records: Dict[str, object] = {}
        self._lock = threading.Lock()

    def find_by_email(self, email: str):
        with self._lock:
            record = self._records.get(email)
            return record.model_copy(deep=True) if record else None

    def exists(self, email: str) -> bool:
        with self._lock:
            return email in self._records

    def create(self, account):
        with self._lock:
            if account.email in self._records:
                raise StoreError("Email already registered")
            account = account.model_copy(update={"id": str(ObjectId())}, deep=True)
            self._records[account.email] = account
            return account.model_copy(deep=True)

    def save(self, account) -> None:
        with self._lock:
            current = self._records.get(account.email)
            if current is None or current.id != account.id:
                raise StoreError("Record no longer exists")
            self._records[account.email] = account.model_copy(deep=True)

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def list_all(self) -> list:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records.values()]


class MemoryCatalogStore:
    def __init__(self):
        self._products: Dict[str, Product] = {}
        self._lock = threading.Lock()

    def find_by_id(self, product_id: str, with_image: bool = False) -> Optional[Product]:
        with self._lock:
            product = self._products.get(canonical_id(product_id))
            if product is None:
                return None
            return product.model_copy(deep=True) if with_image else product.model_copy(update={"image": None})

    def find_many(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        with self._lock:
            return {
                pid: self._products[pid].model_copy(update={"image": None})
                for pid in set(map(canonical_id, product_ids)) if pid in self._products
            }

    def find(self, query: ProductQuery) -> List[Product]:
        return query.apply(self.list_all())

    def list_all(self) -> List[Product]:
        with self._lock:
            return [p.model_copy(update={"image": None}) for p in self._products.values()]

    def create(self, product: Product) -> Product:
        with self._lock:
            product = product.model_copy(update={"id": str(ObjectId())}, deep=True)
            self._products[product.id] = product
            return product.model_copy(update={"image": None})

    def update(self, product_id: str, fields: dict) -> Optional[Product]:
        with self._lock:
            product_id = canonical_id(product_id)
            product = self._products.get(product_id)
            if product is None:
                return None
            product = product.model_copy(update=fields)
            self._products[product_id] = product
            return product.model_copy(update={"image": None})

    def delete(self, product_id: str) -> bool:
        with self._lock:
            return self._products.pop(canonical_id(product_id), None) is not None


class Stores(NamedTuple):
    users: object
    owners: object
    catalog: object


def memory_stores() -> Stores:
    return Stores(
        users=MemoryAccountStore(User),
        owners=MemoryAccountStore(Owner),
        catalog=MemoryCatalogStore(),
    )


def mongo_stores(database: Database) -> Stores:
    stores = Stores(
        users=MongoAccountStore(database, "user", User),
        owners=MongoAccountStore(database, "owner", Owner),
        catalog=MongoCatalogStore(database, "product"),
    )
    stores.users.ensure_indexes()
    stores.owners.ensure_indexes()
    return stores


@functools.lru_cache(maxsize=None)
def get_stores() -> Stores:
    """FastAPI dependency returning the process-wide stores."""
    from database import db

    if db is None:
        logger.warning("DATABASE_URL not set, using in-memory stores")
        return memory_stores()
    return mongo_stores(db)
