"""
Firebase initialization for the Firestore storage backend
"""

from __future__ import annotations

import base64
import json
import os
from functools import lru_cache
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore

from app.core.config import settings


def _load_service_account() -> dict[str, Any] | None:
    if settings.FIREBASE_CREDENTIALS_JSON:
        return json.loads(settings.FIREBASE_CREDENTIALS_JSON)
    if settings.FIREBASE_CREDENTIALS_B64:
        return json.loads(base64.b64decode(settings.FIREBASE_CREDENTIALS_B64).decode("utf-8"))
    path = settings.FIREBASE_CREDENTIALS_FILE
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    return None


@lru_cache(maxsize=1)
def get_firestore_client():
    """Return a cached Firestore client, or None when Firebase is disabled."""
    if not settings.USE_FIREBASE:
        return None

    if not firebase_admin._apps:
        info = _load_service_account()
        if not info:
            raise RuntimeError(
                "Firebase credentials not provided. Set FIREBASE_CREDENTIALS_FILE, "
                "FIREBASE_CREDENTIALS_JSON, or FIREBASE_CREDENTIALS_B64"
            )
        firebase_admin.initialize_app(credentials.Certificate(info))

    return firestore.client()
