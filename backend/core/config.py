"""
Configuration for the Cohort Term backend

Reads settings from environment variables (optionally a backend/.env file)
and initializes the Firebase Admin SDK for Firestore access.
"""

import os
from pathlib import Path

import firebase_admin
from firebase_admin import credentials, firestore
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

# Firebase configuration from environment variables
FIREBASE_CONFIG = {
    "projectId": os.getenv("FIREBASE_PROJECT_ID"),
}

# Service account key path
SERVICE_ACCOUNT_PATH = os.getenv("FIREBASE_SERVICE_ACCOUNT_PATH", "serviceAccountKey.json")

# Term store: "firestore" (default) or "memory" for local development
TERM_STORE = os.getenv("TERM_STORE", "firestore").lower()

# Firestore collections
TERM_RECORDS_COLLECTION = os.getenv("TERM_RECORDS_COLLECTION", "term_records")
TERM_CLAIMS_COLLECTION = os.getenv("TERM_CLAIMS_COLLECTION", "term_claims")

# Attempts to claim a free term number when a concurrent writer wins the race
TERM_CLAIM_RETRIES = int(os.getenv("TERM_CLAIM_RETRIES", "3"))

# Expiry sweep interval in minutes (0 = only check on read)
TERM_SWEEP_MINUTES = int(os.getenv("TERM_SWEEP_MINUTES", "0"))

# Allowed frontend origins
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000"
    ).split(",")
    if origin.strip()
]

# Global Firestore client
_db = None


def initialize_firebase():
    """
    Initialize Firebase Admin SDK.

    Uses a service account key when one is found, otherwise falls back to
    application default credentials (for cloud environments).
    """
    global _db

    if _db is not None:
        return _db

    if not firebase_admin._apps:
        # Build possible paths for service account key
        backend_dir = Path(__file__).parent.parent
        possible_paths = [
            backend_dir / SERVICE_ACCOUNT_PATH,             # backend/key.json
            Path("backend") / SERVICE_ACCOUNT_PATH,         # From project root
            Path(SERVICE_ACCOUNT_PATH)                      # Direct path
        ]

        for path in possible_paths:
            if path.exists():
                cred = credentials.Certificate(str(path))
                firebase_admin.initialize_app(cred)
                break
        else:
            firebase_admin.initialize_app(options={
                'projectId': FIREBASE_CONFIG['projectId']
            })

    _db = firestore.client()
    return _db


def get_firestore_client():
    """Get the Firestore client instance."""
    global _db
    if _db is None:
        _db = initialize_firebase()
    return _db
