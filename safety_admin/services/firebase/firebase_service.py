"""
Firebase service - Firestore, Storage and Auth handles for the backend.
Uses Firebase Admin SDK for server-side operations.

This is the only process-wide state in the application: the Firebase app and
the client handles hanging off it. Everything else receives these handles
through the container.
"""

import os
import threading
from functools import lru_cache
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials, firestore, storage

from safety_admin.common.errors import ExternalSystemError
from safety_admin.services.system.logger_service import get_logger, log_error

logger = get_logger(__name__)

_init_lock = threading.Lock()


class FirebaseService:
    """Initializes the Firebase Admin app once and hands out clients."""

    def __init__(self):
        self._app: Optional[firebase_admin.App] = None
        self._db = None
        self._bucket = None

    def initialize_firebase(self) -> firebase_admin.App:
        """Initialize Firebase Admin SDK from FIREBASE_* env vars or ADC."""
        with _init_lock:
            if self._app is not None:
                return self._app

            try:
                self._app = firebase_admin.get_app()
                logger.info("Firebase already initialized, using existing app")
                return self._app
            except ValueError:
                pass

            options: Dict[str, Any] = {}
            project_id = os.getenv("FIREBASE_PROJECT_ID")
            client_email = os.getenv("FIREBASE_CLIENT_EMAIL")
            private_key = os.getenv("FIREBASE_PRIVATE_KEY")

            bucket_name = os.getenv('FIREBASE_STORAGE_BUCKET')
            if not bucket_name and project_id:
                # Firebase Storage default bucket naming: <projectId>.firebasestorage.app
                bucket_name = f"{project_id}.firebasestorage.app"
            if bucket_name:
                options['storageBucket'] = bucket_name

            try:
                if project_id and client_email and private_key:
                    cred = credentials.Certificate({
                        "type": "service_account",
                        "project_id": project_id,
                        "private_key_id": os.getenv("FIREBASE_PRIVATE_KEY_ID", ""),
                        "private_key": private_key.replace("\\n", "\n"),
                        "client_email": client_email,
                        "client_id": os.getenv("FIREBASE_CLIENT_ID", ""),
                        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                        "token_uri": "https://oauth2.googleapis.com/token",
                        "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
                        "client_x509_cert_url": f"https://www.googleapis.com/robot/v1/metadata/x509/{client_email}"
                    })
                    logger.info("Firebase credentials loaded from environment variables")
                    self._app = firebase_admin.initialize_app(cred, options or None)
                else:
                    # Application Default Credentials (Cloud Run, GKE, local gcloud auth)
                    logger.info("Initializing Firebase with application default credentials")
                    self._app = firebase_admin.initialize_app(options=options or None)
            except Exception as exc:
                log_error(logger, exc, context={"service": "firebase", "operation": "initialize"})
                raise ExternalSystemError('firebase', f"initialization failed: {exc}") from exc

            logger.info("Firebase initialized successfully", extra={"storage_bucket": bucket_name})
            return self._app

    @property
    def app(self) -> firebase_admin.App:
        return self._app or self.initialize_firebase()

    def is_connected(self) -> bool:
        return self._db is not None

    def get_client(self):
        """Return Firestore client, initializing if necessary."""
        if self._db is None:
            self._db = firestore.client(app=self.app)
        return self._db

    def get_bucket(self):
        """Return Cloud Storage bucket, initializing if necessary."""
        if self._bucket is None:
            bucket_name = os.getenv('FIREBASE_STORAGE_BUCKET')
            try:
                self._bucket = storage.bucket(bucket_name, app=self.app) if bucket_name else storage.bucket(app=self.app)
            except ValueError as exc:
                raise ExternalSystemError('firebase_storage', f"no storage bucket configured: {exc}") from exc
            logger.info("Resolved storage bucket", extra={"bucket": self._bucket.name})
        return self._bucket


@lru_cache(maxsize=1)
def get_firebase_service() -> FirebaseService:
    return FirebaseService()
