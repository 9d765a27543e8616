from __future__ import annotations

import logging
import os

import firebase_admin
from firebase_admin import credentials

logger = logging.getLogger(__name__)


class FirebaseConfigError(RuntimeError):
    pass


def init_firebase_app() -> firebase_admin.App:
    """Return the default Firebase app, initialising it from the environment on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    database_url = os.getenv("FIREBASE_DATABASE_URL")
    if not database_url:
        raise FirebaseConfigError("FIREBASE_DATABASE_URL is not set")

    key_file = os.getenv("FIREBASE_CREDENTIALS", "firebase_key.json")
    if not os.path.exists(key_file):
        raise FirebaseConfigError(f"Firebase service account file not found: {key_file}")

    cred = credentials.Certificate(key_file)
    app = firebase_admin.initialize_app(cred, {"databaseURL": database_url})
    logger.info("Firebase app initialised database_url=%s", database_url)
    return app
