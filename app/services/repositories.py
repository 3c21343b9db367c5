"""
Repository layer abstracting storage (SQLAlchemy vs Firebase Firestore).

Two contracts are offered: an entity store (save / load / list by
collection) and a durable FIFO list used by the hangout pool.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import SessionLocal
from app.core.errors import StorageError
from app.models import FarmedHangout, StoredEntity
from app.services.firebase_client import get_firestore_client

logger = logging.getLogger(__name__)


def use_firestore() -> bool:
    return settings.USE_FIREBASE is True


# -------- Entity repository --------

class SqlEntityRepo:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def save(self, collection: str, entity_id: Any, data: Dict[str, Any]) -> None:
        try:
            with self.session_factory() as db:
                row = db.get(StoredEntity, (collection, str(entity_id)))
                if row is None:
                    row = StoredEntity(collection=collection, entity_id=str(entity_id))
                    db.add(row)
                row.data = json.dumps(data)
                row.updated_at = datetime.utcnow()
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save {collection}/{entity_id}: {e}")
            raise StorageError(f"could not save {collection}/{entity_id}") from e

    def load(self, collection: str, entity_id: Any) -> Optional[Dict[str, Any]]:
        try:
            with self.session_factory() as db:
                row = db.get(StoredEntity, (collection, str(entity_id)))
                return json.loads(row.data) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"could not load {collection}/{entity_id}") from e

    def list(self, collection: str) -> List[Dict[str, Any]]:
        try:
            with self.session_factory() as db:
                rows = db.query(StoredEntity).filter(StoredEntity.collection == collection).all()
                return [json.loads(row.data) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"could not list {collection}") from e


class FirestoreEntityRepo:
    # Firestore shape: collection "<collection>" with one document per entity id

    def save(self, collection: str, entity_id: Any, data: Dict[str, Any]) -> None:
        fs = get_firestore_client()
        fs.collection(collection).document(str(entity_id)).set(data)

    def load(self, collection: str, entity_id: Any) -> Optional[Dict[str, Any]]:
        fs = get_firestore_client()
        doc = fs.collection(collection).document(str(entity_id)).get()
        return doc.to_dict() if doc.exists else None

    def list(self, collection: str) -> List[Dict[str, Any]]:
        fs = get_firestore_client()
        return [doc.to_dict() for doc in fs.collection(collection).stream()]


# -------- Hangout URL list --------

class SqlHangoutUrlRepo:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory
        self._lock = threading.Lock()

    def push(self, url: str) -> None:
        try:
            with self.session_factory() as db:
                db.add(FarmedHangout(url=url))
                db.commit()
        except SQLAlchemyError as e:
            raise StorageError("could not queue hangout url") from e

    def pop(self) -> Optional[str]:
        # select + delete must not interleave between threadpool workers
        with self._lock:
            try:
                with self.session_factory() as db:
                    row = db.query(FarmedHangout).order_by(FarmedHangout.id).first()
                    if row is None:
                        return None
                    url = row.url
                    db.delete(row)
                    db.commit()
                    return url
            except SQLAlchemyError as e:
                raise StorageError("could not pop hangout url") from e

    def count(self) -> int:
        try:
            with self.session_factory() as db:
                return db.query(func.count(FarmedHangout.id)).scalar() or 0
        except SQLAlchemyError as e:
            raise StorageError("could not count hangout urls") from e


class FirestoreHangoutUrlRepo:
    # Firestore shape: collection "farming", documents ordered by queued_at
    COLLECTION = "farming"

    def __init__(self):
        self._lock = threading.Lock()

    def push(self, url: str) -> None:
        fs = get_firestore_client()
        fs.collection(self.COLLECTION).add({"url": url, "queued_at": datetime.utcnow().isoformat()})

    def pop(self) -> Optional[str]:
        fs = get_firestore_client()
        with self._lock:
            docs = fs.collection(self.COLLECTION).order_by("queued_at").limit(1).get()
            if not docs:
                return None
            doc = docs[0]
            doc.reference.delete()
            return doc.to_dict().get("url")

    def count(self) -> int:
        fs = get_firestore_client()
        return len(fs.collection(self.COLLECTION).get())


def get_entity_repo():
    return FirestoreEntityRepo() if use_firestore() else SqlEntityRepo()


def get_hangout_url_repo():
    return FirestoreHangoutUrlRepo() if use_firestore() else SqlHangoutUrlRepo()
