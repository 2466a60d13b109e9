"""
Firestore client configuration and initialization.

This module provides Firestore client setup that:
- Auto-detects emulator via FIRESTORE_EMULATOR_HOST
- Uses Application Default Credentials in production
"""

import logging
import os
from typing import Optional

from google.cloud import firestore

logger = logging.getLogger(__name__)

# Singleton client instance
_firestore_client: Optional[firestore.Client] = None


def get_firestore_client() -> firestore.Client:
    """
    Get the Firestore client singleton.

    The grant engine is synchronous, so this is the blocking client.

    Returns:
        firestore.Client instance

    Raises:
        ValueError: If GCP_PROJECT_ID is not set
    """
    global _firestore_client

    if _firestore_client is not None:
        return _firestore_client

    project_id = os.getenv("GCP_PROJECT_ID") or os.getenv("GOOGLE_CLOUD_PROJECT")
    emulator_host = os.getenv("FIRESTORE_EMULATOR_HOST")

    if not project_id:
        raise ValueError(
            "GCP_PROJECT_ID or GOOGLE_CLOUD_PROJECT must be set for Firestore"
        )

    # Client auto-detects the emulator from the environment
    _firestore_client = firestore.Client(project=project_id)

    if emulator_host:
        logger.info(f"Using Firestore emulator at {emulator_host}")
    else:
        logger.info(f"Firestore client initialized for project: {project_id}")

    return _firestore_client


def close_firestore_client() -> None:
    """
    Close the Firestore client connection.

    Called during application shutdown.
    """
    global _firestore_client

    if _firestore_client is not None:
        _firestore_client.close()
        _firestore_client = None
        logger.info("Firestore client closed")


def reset_firestore_client() -> None:
    """
    Reset the Firestore client singleton.

    Useful for testing to ensure clean state between tests.
    """
    global _firestore_client
    _firestore_client = None
