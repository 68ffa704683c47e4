"""
Firebase integration.

`db` starts as None. Call `initialize()` inside the FastAPI lifespan
context manager before handling any requests. Without credentials the
pattern catalog falls back to the in-process store.
"""

import os
import json
import logging
import firebase_admin
from firebase_admin import credentials, firestore

logger = logging.getLogger(__name__)

# Module-level reference. Set by initialize(); all consuming modules reference
# this at call time via `from mediaforensics.integrations import firebase; firebase.db`.
db = None  # firestore.Client | None


def initialize() -> None:
    """Initialize Firebase Admin SDK and set the module-level `db` client."""
    global db

    service_account_json = os.getenv("FIREBASE_SERVICE_ACCOUNT")
    project_id = os.getenv("GOOGLE_CLOUD_PROJECT")
    if not service_account_json and not project_id:
        logger.warning("[STARTUP] Firebase credentials not found. Pattern catalog will use memory.")
        return

    try:
        if not firebase_admin._apps:
            if service_account_json:
                sa_info = json.loads(service_account_json)
                firebase_admin.initialize_app(credentials.Certificate(sa_info))
            else:
                firebase_admin.initialize_app()
        db = firestore.client()
        logger.info("[STARTUP] Firebase initialized")
    except Exception as e:
        logger.error(f"[STARTUP] Error initializing Firebase: {e}")
        db = None
