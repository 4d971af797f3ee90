# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with versioned writes, geospatial queries and connection pooling.
"""

import os
import logging
from datetime import datetime
from typing import List, Dict, Optional, Any, Sequence, Type, TypeVar
from pydantic import ValidationError
from pymongo import MongoClient, ASCENDING, DESCENDING, GEOSPHERE, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)
from bson import ObjectId
from bson.errors import InvalidId

from domain.geo import km_to_radians
from models.base import BaseEntity

logger = logging.getLogger(__name__)

E = TypeVar('E', bound=BaseEntity)


class VersionConflictError(Exception):
    """Raised when a versioned write finds no document at the expected version."""

    def __init__(self, collection: str, doc_id: str, expected_version: int):
        super().__init__(f"{collection}/{doc_id} is no longer at version {expected_version}")
        self.collection = collection
        self.doc_id = doc_id
        self.expected_version = expected_version


class PaginationResult:
    """Result container for paginated queries."""

    def __init__(self, items: List[Dict], total: int, page: int, page_size: int):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size
        self.total_pages = (total + page_size - 1) // page_size
        self.has_next = page < self.total_pages
        self.has_prev = page > 1


def _point(coordinates: Sequence[float]) -> Dict[str, Any]:
    return {"type": "Point", "coordinates": [float(coordinates[0]), float(coordinates[1])]}


def _expose_id(document: Dict) -> Dict:
    """Replace ``_id`` with a string ``id``."""
    if document and "_id" in document:
        document["id"] = str(document["_id"])
        del document["_id"]
    return document


def load_entities(model: Type[E], documents: List[Dict]) -> List[E]:
    """Parse stored documents, skipping records that no longer validate."""
    entities = []
    for document in documents:
        try:
            entities.append(model.from_document(document))
        except ValidationError as e:
            logger.warning(
                f"Skipping invalid {model.__name__} document",
                extra={"document_id": document.get("id"), "error": str(e)}
            )
    return entities


class MongoDBService:
    """MongoDB service with versioned writes and connection pooling."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/rescue_connect_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'rescue_connect_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def _validate_object_id(self, doc_id: str) -> ObjectId:
        """Validate and convert string ID to ObjectId."""
        if not isinstance(doc_id, str):
            raise ValueError(f"Invalid ObjectId format: {doc_id!r}")
        try:
            return ObjectId(doc_id)
        except (InvalidId, TypeError):
            raise ValueError(f"Invalid ObjectId format: {doc_id}")

    def _add_timestamps(self, document: Dict, user_id: Optional[str] = None, is_update: bool = False) -> Dict:
        """Add creation and update timestamps to document."""
        now = datetime.utcnow()

        if not is_update:
            document.setdefault("createdAt", now)
            if user_id:
                document["createdBy"] = user_id

        document["updatedAt"] = now
        return document

    # CRUD Operations

    def create(self, collection: str, document: Dict, user_id: Optional[str] = None) -> str:
        """Insert a new document and return its ID."""
        try:
            document = self._add_timestamps(dict(document), user_id)

            if "_id" not in document:
                document["_id"] = ObjectId()

            collection_obj = self.get_collection(collection)
            result = collection_obj.insert_one(document)

            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return str(result.inserted_id)

        except DuplicateKeyError as e:
            logger.error(f"Duplicate key error in {collection}: {e}")
            raise ValueError("Document with this identifier already exists")
        except Exception as e:
            logger.error(f"Failed to create document in {collection}: {e}")
            raise

    def find_one(self, collection: str, doc_id: str) -> Optional[Dict]:
        """Find a single document by ID; None when absent or the ID is malformed."""
        try:
            object_id = self._validate_object_id(doc_id)
        except ValueError as e:
            logger.warning(f"Invalid document ID {doc_id}: {e}")
            return None

        try:
            document = self.get_collection(collection).find_one({"_id": object_id})
            if document:
                logger.debug(f"Found document {doc_id} in {collection}")
            else:
                logger.debug(f"Document {doc_id} not found in {collection}")
            return _expose_id(document)

        except Exception as e:
            logger.error(f"Failed to find document {doc_id} in {collection}: {e}")
            raise

    def find(self, collection: str, filters: Dict = None, sort: Optional[List] = None,
             limit: Optional[int] = None, skip: int = 0) -> List[Dict]:
        """Find documents matching filters."""
        try:
            cursor = self.get_collection(collection).find(filters or {})
            if sort:
                cursor = cursor.sort(sort)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)

            documents = [_expose_id(doc) for doc in cursor]
            logger.debug(f"Found {len(documents)} documents in {collection}")
            return documents

        except Exception as e:
            logger.error(f"Failed to find documents in {collection}: {e}")
            raise

    def find_by_ids(self, collection: str, doc_ids: Sequence[str], filters: Dict = None) -> List[Dict]:
        """Find documents by a list of IDs, skipping malformed ones."""
        object_ids = []
        for doc_id in doc_ids:
            try:
                object_ids.append(self._validate_object_id(doc_id))
            except ValueError:
                logger.warning(f"Skipping invalid document ID {doc_id} in {collection}")

        if not object_ids:
            return []

        query = {"_id": {"$in": object_ids}}
        if filters:
            query.update(filters)
        return self.find(collection, query)

    def update_one(self, collection: str, doc_id: str, updates: Dict, filters: Optional[Dict] = None) -> bool:
        """
        Set fields on a document; False when nothing matched.

        ``filters`` adds conditions to the ID match, turning the write into a
        conditional one.
        """
        try:
            object_id = self._validate_object_id(doc_id)
            updates = self._add_timestamps(dict(updates), is_update=True)

            query = {**(filters or {}), "_id": object_id}
            result = self.get_collection(collection).update_one(query, {"$set": updates})

            if result.matched_count > 0:
                logger.info(f"Updated document {doc_id} in {collection}")
                return True

            logger.warning(f"No document updated for {doc_id} in {collection}")
            return False

        except ValueError as e:
            logger.error(f"Invalid document ID {doc_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to update document {doc_id} in {collection}: {e}")
            raise

    def update_many(self, collection: str, filters: Dict, updates: Optional[Dict] = None,
                    add_to_set: Optional[Dict] = None) -> int:
        """Apply one update to every matching document; returns the modified count."""
        operation = {"$set": self._add_timestamps(dict(updates or {}), is_update=True)}
        if add_to_set:
            operation["$addToSet"] = add_to_set

        try:
            result = self.get_collection(collection).update_many(filters, operation)
            logger.info(f"Updated {result.modified_count} documents in {collection}")
            return result.modified_count

        except Exception as e:
            logger.error(f"Failed to update documents in {collection}: {e}")
            raise

    def update_versioned(self, collection: str, doc_id: str, expected_version: int,
                         updates: Dict, add_to_set: Optional[Dict] = None) -> int:
        """
        Compare-and-set update guarded by the document ``version``.

        Args:
            collection: Collection name
            doc_id: Document ID
            expected_version: Version the caller read
            updates: Fields to ``$set``
            add_to_set: Fields to ``$addToSet`` (set semantics)

        Returns:
            The new version

        Raises:
            VersionConflictError: If the document is missing or was modified concurrently
        """
        object_id = self._validate_object_id(doc_id)
        operation: Dict[str, Any] = {
            "$set": self._add_timestamps(dict(updates), is_update=True),
            "$inc": {"version": 1}
        }
        if add_to_set:
            operation["$addToSet"] = add_to_set

        try:
            result = self.get_collection(collection).update_one(
                {"_id": object_id, "version": expected_version},
                operation
            )
        except Exception as e:
            logger.error(f"Failed versioned update of {doc_id} in {collection}: {e}")
            raise

        if result.matched_count == 0:
            logger.warning(
                f"Version conflict on {collection}/{doc_id}",
                extra={"collection": collection, "document_id": doc_id, "expected_version": expected_version}
            )
            raise VersionConflictError(collection, doc_id, expected_version)

        logger.info(f"Updated document {doc_id} in {collection} to version {expected_version + 1}")
        return expected_version + 1

    def delete_one(self, collection: str, doc_id: str) -> bool:
        """Hard delete a document (compensating actions only)."""
        try:
            object_id = self._validate_object_id(doc_id)
            result = self.get_collection(collection).delete_one({"_id": object_id})

            if result.deleted_count > 0:
                logger.warning(f"Hard deleted document {doc_id} in {collection}")
                return True

            logger.warning(f"No document hard deleted for {doc_id} in {collection}")
            return False

        except ValueError as e:
            logger.error(f"Invalid document ID {doc_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to hard delete document {doc_id} in {collection}: {e}")
            raise

    def claim_one(self, collection: str, filters: Dict, updates: Dict,
                  sort: Optional[List] = None) -> Optional[Dict]:
        """
        Atomically select one matching document and update it.

        The filter must include the condition the update negates so that
        concurrent callers never claim the same document.
        """
        try:
            document = self.get_collection(collection).find_one_and_update(
                filters,
                {"$set": self._add_timestamps(dict(updates), is_update=True), "$inc": {"version": 1}},
                sort=sort,
                return_document=ReturnDocument.AFTER
            )
            return _expose_id(document)

        except Exception as e:
            logger.error(f"Failed to claim document in {collection}: {e}")
            raise

    def paginate(self, collection: str, page: int = 1, page_size: int = 20,
                 filters: Dict = None, sort_by: str = "createdAt", sort_order: int = DESCENDING) -> PaginationResult:
        """Paginate documents with sorting and filtering."""
        try:
            query = filters or {}
            collection_obj = self.get_collection(collection)

            skip = (page - 1) * page_size
            total = collection_obj.count_documents(query)

            cursor = collection_obj.find(query).sort(sort_by, sort_order).skip(skip).limit(page_size)
            documents = [_expose_id(doc) for doc in cursor]

            logger.debug(f"Paginated {len(documents)} documents from {collection} (page {page})")
            return PaginationResult(documents, total, page, page_size)

        except Exception as e:
            logger.error(f"Failed to paginate documents in {collection}: {e}")
            raise

    def count(self, collection: str, filters: Dict = None) -> int:
        """Count documents with optional filters."""
        try:
            return self.get_collection(collection).count_documents(filters or {})
        except Exception as e:
            logger.error(f"Failed to count documents in {collection}: {e}")
            raise

    # Geospatial queries

    def find_near(self, collection: str, field: str, coordinates: Sequence[float],
                  max_distance_km: float, filters: Dict = None, limit: Optional[int] = None) -> List[Dict]:
        """
        Index-backed proximity query, closest first.

        Args:
            collection: Collection name
            field: GeoJSON point field with a 2dsphere index
            coordinates: (longitude, latitude) query point
            max_distance_km: Search radius
            filters: Additional equality/range filters
            limit: Maximum number of documents

        Returns:
            Matching documents in ascending distance order
        """
        query = {
            field: {
                "$nearSphere": {
                    "$geometry": _point(coordinates),
                    "$maxDistance": max_distance_km * 1000
                }
            }
        }
        if filters:
            query.update(filters)

        try:
            cursor = self.get_collection(collection).find(query)
            if limit:
                cursor = cursor.limit(limit)
            documents = [_expose_id(doc) for doc in cursor]

            logger.debug(
                f"Proximity query on {collection}.{field} returned {len(documents)} documents",
                extra={"collection": collection, "radius_km": max_distance_km}
            )
            return documents

        except Exception as e:
            logger.error(f"Failed proximity query on {collection}: {e}")
            raise

    def find_within(self, collection: str, field: str, coordinates: Sequence[float],
                    radius_km: float, filters: Dict = None) -> List[Dict]:
        """Unordered within-radius query (works on array-embedded points)."""
        query = {
            field: {
                "$geoWithin": {
                    "$centerSphere": [[float(coordinates[0]), float(coordinates[1])], km_to_radians(radius_km)]
                }
            }
        }
        if filters:
            query.update(filters)
        return self.find(collection, query)

    # Index Management

    def create_indexes(self) -> None:
        """Create geospatial and performance indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            cases = self.get_collection("cases")
            cases.create_index([("location", GEOSPHERE)])
            cases.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
            cases.create_index([("status", ASCENDING), ("nextReminderDue", ASCENDING), ("reminderSent", ASCENDING)])
            cases.create_index([("assignedHelpers", ASCENDING)])
            cases.create_index([("reporterId", ASCENDING)])
            cases.create_index([("contactInfo.phone", ASCENDING)])

            status_updates = self.get_collection("status_updates")
            status_updates.create_index([("caseId", ASCENDING), ("timestamp", DESCENDING)])
            status_updates.create_index([("authorId", ASCENDING)])

            service_areas = self.get_collection("service_areas")
            service_areas.create_index([("location", GEOSPHERE)])
            service_areas.create_index([("helperId", ASCENDING), ("isActive", ASCENDING)])

            users = self.get_collection("users")
            users.create_index("email", unique=True)
            users.create_index([("location", GEOSPHERE)], sparse=True)
            users.create_index([("profile.serviceAreas.location", GEOSPHERE)], sparse=True)
            users.create_index([("userType", ASCENDING), ("isActive", ASCENDING)])

            messages = self.get_collection("messages")
            messages.create_index([("caseId", ASCENDING), ("createdAt", ASCENDING)])

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
