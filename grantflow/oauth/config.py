"""
Authorization server configuration.

Loaded from environment variables. Validates settings at startup so a
misconfigured deployment fails fast.
"""

import json
import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from pydantic import TypeAdapter

from grantflow.core.domain import Client


logger = logging.getLogger(__name__)

# Supported storage backends for clients, codes and contexts
SUPPORTED_BACKENDS = ["memory", "firestore"]

_clients_adapter = TypeAdapter(list[Client])


@dataclass
class GrantFlowConfig:
    """
    Grant flow configuration settings.

    Lifetimes are in seconds.
    """

    access_token_expires_in: int = 3600
    authorization_code_ttl: int = 600
    context_ttl: int = 600
    token_length: int = 48
    storage_backend: str = "memory"
    clients_json: str | None = None
    gcp_project_id: str | None = None
    encryption_key: str | None = None

    @classmethod
    def from_env(cls) -> "GrantFlowConfig":
        """Load configuration from environment variables."""
        return cls(
            access_token_expires_in=int(os.getenv("ACCESS_TOKEN_EXPIRES_IN", "3600")),
            authorization_code_ttl=int(os.getenv("AUTHORIZATION_CODE_TTL", "600")),
            context_ttl=int(os.getenv("CONTEXT_TTL", "600")),
            token_length=int(os.getenv("TOKEN_LENGTH", "48")),
            storage_backend=os.getenv("OAUTH_STORAGE_BACKEND", "memory").lower(),
            clients_json=os.getenv("OAUTH_CLIENTS"),
            gcp_project_id=os.getenv("GCP_PROJECT_ID")
            or os.getenv("GOOGLE_CLOUD_PROJECT"),
            encryption_key=os.getenv("SECRET_ENCRYPTION_KEY"),
        )

    @property
    def using_firestore(self) -> bool:
        return self.storage_backend == "firestore"

    def validate(self) -> None:
        """Validate configuration. Call at startup to fail fast."""
        if self.storage_backend not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"Unknown OAUTH_STORAGE_BACKEND: {self.storage_backend}. "
                f"Supported: {SUPPORTED_BACKENDS}"
            )
        for name in (
            "access_token_expires_in",
            "authorization_code_ttl",
            "context_ttl",
            "token_length",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.using_firestore:
            if not self.gcp_project_id:
                raise ValueError("GCP_PROJECT_ID is required for the firestore backend")
            if not self.encryption_key:
                raise ValueError(
                    "SECRET_ENCRYPTION_KEY is required for the firestore backend"
                )

    def load_clients(self) -> list[Client]:
        """
        Parse client registrations from OAUTH_CLIENTS.

        The value is a JSON list of objects with client_id, client_secret,
        redirect_uris and optionally client_name and response_types.

        Raises:
            ValueError: If the JSON is malformed or a client is invalid
        """
        if not self.clients_json:
            return []
        try:
            clients = _clients_adapter.validate_python(json.loads(self.clients_json))
        except ValueError as e:
            raise ValueError(f"Invalid OAUTH_CLIENTS: {e}")
        logger.info(f"Loaded {len(clients)} client registration(s) from environment")
        return clients


@lru_cache()
def get_grant_config() -> GrantFlowConfig:
    """Get grant flow configuration singleton."""
    return GrantFlowConfig.from_env()
