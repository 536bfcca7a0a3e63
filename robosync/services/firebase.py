"""firebase-admin initialization and shared store handles."""
from __future__ import annotations

from typing import Any, Optional

import firebase_admin
from firebase_admin import credentials, db, firestore_async

from ..config import (
    FIREBASE_CLIENT_EMAIL,
    FIREBASE_DATABASE_URL,
    FIREBASE_PRIVATE_KEY,
    FIREBASE_PROJECT_ID,
)


def initialize_firebase() -> firebase_admin.App:
    """Initialize the default app once; later calls return it."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass
    cred = credentials.Certificate({
        "type": "service_account",
        "project_id": FIREBASE_PROJECT_ID,
        "private_key": FIREBASE_PRIVATE_KEY,
        "client_email": FIREBASE_CLIENT_EMAIL,
        "token_uri": "https://oauth2.googleapis.com/token",
    })
    return firebase_admin.initialize_app(cred, {
        "projectId": FIREBASE_PROJECT_ID,
        "databaseURL": FIREBASE_DATABASE_URL,
    })


# ── Singletons ──────────────────────────────────────────────
_firestore: Optional[Any] = None


def get_firestore() -> Any:
    """Async Firestore client (``google.cloud.firestore.AsyncClient``)."""
    global _firestore
    if _firestore is None:
        initialize_firebase()
        _firestore = firestore_async.client()
    return _firestore


def get_realtime_db() -> db.Reference:
    """Root reference of the Realtime Database."""
    initialize_firebase()
    return db.reference("/")
