"""
Push notification dispatch.

Sends FCM data messages through firebase-admin. Delivery is best-effort: the
sender reports failures as `Unavailable` and the lifecycle engine decides
what to do with them. No delivery receipts are tracked.
"""
import json
import logging
import os
import threading
from functools import lru_cache
from typing import Dict, Optional, Sequence

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import FirebaseError

from carecall.errors import Unavailable

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "carecall"


class PushSender:
    """Interface consumed by the lifecycle engine."""

    def send_many(self, tokens: Sequence[str], data: Dict[str, str]) -> None:
        raise NotImplementedError

    def send_one(self, token: str, data: Dict[str, str]) -> None:
        raise NotImplementedError


class LoggingPushSender(PushSender):
    """Used when FCM is not configured; records what would have been sent."""

    def send_many(self, tokens: Sequence[str], data: Dict[str, str]) -> None:
        logger.info("FCM not configured - skipping push to %d device(s): %s", len(tokens), data.get("type"))

    def send_one(self, token: str, data: Dict[str, str]) -> None:
        logger.info("FCM not configured - skipping push to 1 device: %s", data.get("type"))


class FirebasePushSender(PushSender):
    def __init__(self, service_account_json: str):
        try:
            service_account = json.loads(service_account_json)
        except ValueError as e:
            raise RuntimeError("FIREBASE_SERVICE_ACCOUNT_JSON must be valid JSON") from e
        self._service_account = service_account
        self._app: Optional[firebase_admin.App] = None
        self._app_lock = threading.Lock()

    def _get_app(self) -> firebase_admin.App:
        if self._app is not None:
            return self._app
        # first sends can arrive on several threadpool workers at once
        with self._app_lock:
            if self._app is None:
                try:
                    self._app = firebase_admin.get_app(FIREBASE_APP_NAME)
                except ValueError:
                    cred = credentials.Certificate(self._service_account)
                    self._app = firebase_admin.initialize_app(cred, name=FIREBASE_APP_NAME)
                    logger.info("Firebase app initialized (project=%s)", self._service_account.get("project_id"))
        return self._app

    def send_many(self, tokens: Sequence[str], data: Dict[str, str]) -> None:
        message = messaging.MulticastMessage(tokens=list(tokens), data=data)
        try:
            resp = messaging.send_each_for_multicast(message, app=self._get_app())
        except (FirebaseError, ValueError) as e:
            raise Unavailable(f"FCM multicast failed: {e}") from e
        if resp.failure_count:
            logger.warning(
                "FCM multicast %s: %d/%d delivered",
                data.get("type"), resp.success_count, len(tokens),
            )

    def send_one(self, token: str, data: Dict[str, str]) -> None:
        message = messaging.Message(token=token, data=data)
        try:
            messaging.send(message, app=self._get_app())
        except (FirebaseError, ValueError) as e:
            raise Unavailable(f"FCM send failed: {e}") from e


@lru_cache(maxsize=1)
def get_push_sender() -> PushSender:
    raw = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
    if not raw:
        logger.warning("FIREBASE_SERVICE_ACCOUNT_JSON not set; push notifications are disabled")
        return LoggingPushSender()
    return FirebasePushSender(raw)
