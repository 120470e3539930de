"""Ledger of confirmation emails, keyed by PaymentIntent id.

``claim`` is a compare-and-set: exactly one caller gets True for a given
key until the claim is released. The Firestore ledger makes that hold across
processes and restarts; the in-memory ledger only within one process.
"""
from __future__ import annotations

import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core.exceptions import AlreadyExists

from ..settings import settings

COLLECTION = "email_dispatches"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DispatchLedger(ABC):
    @abstractmethod
    def claim(self, key: str, data: Dict[str, Any]) -> bool:
        """Reserve ``key``. False if someone already holds or completed it."""

    @abstractmethod
    def mark_sent(self, key: str, email_id: Optional[str]) -> None:
        ...

    @abstractmethod
    def release(self, key: str) -> None:
        """Drop a claim whose send failed, so a later attempt can retry."""

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...


class MemoryDispatchLedger(DispatchLedger):
    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def claim(self, key: str, data: Dict[str, Any]) -> bool:
        with self._lock:
            if key in self._records:
                return False
            self._records[key] = {**data, "status": "claimed", "claimedAt": _now()}
            return True

    def mark_sent(self, key: str, email_id: Optional[str]) -> None:
        with self._lock:
            record = self._records.setdefault(key, {})
            record.update({"status": "sent", "emailId": email_id, "sentAt": _now()})

    def release(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(key)
            return dict(record) if record else None


_firebase_lock = threading.Lock()


def firestore_client():
    """Firestore client for the default Firebase app, initializing it on first use.

    Uses GOOGLE_APPLICATION_CREDENTIALS when it points at a service-account
    file, application default credentials otherwise.
    """
    with _firebase_lock:
        try:
            app = firebase_admin.get_app()
        except ValueError:
            key_file = settings.google_application_credentials
            cred = credentials.Certificate(key_file) if key_file and os.path.isfile(key_file) else None
            app = firebase_admin.initialize_app(cred, {"projectId": settings.firebase_project_id})
    return firestore.client(app)


class FirestoreDispatchLedger(DispatchLedger):
    def __init__(self, collection: str = COLLECTION, client=None):
        self.collection = collection
        self._client = client

    def _ref(self, key: str):
        if self._client is None:
            self._client = firestore_client()
        return self._client.collection(self.collection).document(key)

    def claim(self, key: str, data: Dict[str, Any]) -> bool:
        try:
            # create() fails if the document exists: server-side compare-and-set
            self._ref(key).create({**data, "status": "claimed", "claimedAt": _now()})
        except AlreadyExists:
            return False
        return True

    def mark_sent(self, key: str, email_id: Optional[str]) -> None:
        self._ref(key).set({"status": "sent", "emailId": email_id, "sentAt": _now()}, merge=True)

    def release(self, key: str) -> None:
        self._ref(key).delete()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        snap = self._ref(key).get()
        if not snap.exists:
            return None
        return snap.to_dict() or {}


_ledger: Optional[DispatchLedger] = None


def get_ledger() -> DispatchLedger:
    global _ledger
    if _ledger is None:
        if settings.dispatch_ledger == "firestore":
            _ledger = FirestoreDispatchLedger()
        else:
            _ledger = MemoryDispatchLedger()
    return _ledger


def set_ledger(ledger: Optional[DispatchLedger]) -> None:
    """Override the active ledger (tests). ``None`` restores the configured one."""
    global _ledger
    _ledger = ledger
