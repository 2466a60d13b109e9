"""
Firestore implementations of the grant ports.

Stores clients, authorization codes and grant contexts in Firestore.
These are driven adapters implementing the ports in grantflow/core/ports.py.

Data model:
- Collection: oauth_clients
  - Document ID: {client_id}
  - Fields: client_id, client_secret (encrypted), client_name,
            redirect_uris, response_types
- Collection: authorization_codes
  - Document ID: sha256({code})
  - Fields: client_id, redirect_uri, scope, status, issued_at, expires_at,
            consumed_at
- Collection: grant_contexts
  - Document ID: sha256({code})
  - Fields: client_id, redirect_uri, scope, state, code_challenge,
            code_challenge_method, property_name, created_at, expires_at

Codes are never stored in clear; documents are keyed by their digest.
"""

import hashlib
import logging
from datetime import UTC, datetime, timedelta

from authlib.common.security import generate_token
from cryptography.fernet import Fernet, InvalidToken
from google.cloud import firestore

from grantflow.core.domain import (
    Client,
    CodeStatus,
    Context,
    ValidatedAuthorizationRequest,
    ValidatedTokenRequest,
)
from grantflow.infrastructure.memory_stores import DEFAULT_CODE_LENGTH

logger = logging.getLogger(__name__)

CLIENTS_COLLECTION = "oauth_clients"
CODES_COLLECTION = "authorization_codes"
CONTEXTS_COLLECTION = "grant_contexts"


def code_digest(code: str) -> str:
    """Document ID for a code: its SHA-256 hex digest."""
    return hashlib.sha256(code.encode()).hexdigest()


class EncryptionError(Exception):
    """Raised when a stored client secret cannot be decrypted."""


class SecretCipher:
    """Fernet encryption of client secrets at rest."""

    def __init__(self, key: str):
        """
        Args:
            key: 32-byte URL-safe base64 Fernet key (SECRET_ENCRYPTION_KEY)

        Raises:
            ValueError: If the key is not a valid Fernet key
        """
        try:
            self._fernet = Fernet(key.encode())
        except ValueError as e:
            raise ValueError(f"Invalid SECRET_ENCRYPTION_KEY: {e}")

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.error("Failed to decrypt client secret: invalid token or key")
            raise EncryptionError("Decryption failed: invalid token or key mismatch")


class FirestoreClientRegistry:
    """Firestore implementation of ClientRegistry with encrypted secrets."""

    def __init__(self, db: firestore.Client, cipher: SecretCipher):
        """
        Initialize the registry.

        Args:
            db: Firestore client instance
            cipher: Encrypts secrets on write and decrypts them on read
        """
        self._clients = db.collection(CLIENTS_COLLECTION)
        self._cipher = cipher

    def register(self, client: Client) -> Client:
        """
        Store or replace a client registration.

        The client secret is encrypted before storage.
        """
        self._clients.document(client.client_id).set(
            {
                "client_id": client.client_id,
                "client_secret": self._cipher.encrypt(client.client_secret),
                "client_name": client.client_name,
                "redirect_uris": list(client.redirect_uris),
                "response_types": list(client.response_types),
            }
        )
        logger.info(f"Registered client: {client.client_id}")
        return client

    def retrieve_client(self, client_id: str) -> Client | None:
        """
        Load a client, decrypting its secret.

        Returns:
            Client if found, None otherwise
        """
        doc = self._clients.document(client_id).get()
        if not doc.exists:
            return None

        data = doc.to_dict()
        if data is None:
            return None

        return Client(
            client_id=data["client_id"],
            client_secret=self._cipher.decrypt(data["client_secret"]),
            client_name=data.get("client_name"),
            redirect_uris=data["redirect_uris"],
            response_types=data.get("response_types", ["code"]),
        )


class FirestoreCodeStore:
    """
    Firestore implementation of CodeStore.

    Consumption runs in a Firestore transaction: concurrent consumers of one
    code are serialized by Firestore and only the first sees it as issued.
    """

    def __init__(
        self,
        db: firestore.Client,
        ttl_seconds: int = 600,
        code_length: int = DEFAULT_CODE_LENGTH,
    ):
        self._db = db
        self._codes = db.collection(CODES_COLLECTION)
        self.ttl_seconds = ttl_seconds
        self.code_length = code_length

    def issue(self, request: ValidatedAuthorizationRequest) -> str:
        code = generate_token(self.code_length)
        now = datetime.now(UTC)

        # create() fails instead of overwriting an existing document
        self._codes.document(code_digest(code)).create(
            {
                "client_id": request.client_id,
                "redirect_uri": request.redirect_uri,
                "scope": request.scope,
                "status": CodeStatus.ISSUED.value,
                "issued_at": now,
                "expires_at": now + timedelta(seconds=self.ttl_seconds),
                "consumed_at": None,
            }
        )
        return code

    def consume(self, code: str) -> bool:
        doc_ref = self._codes.document(code_digest(code))

        @firestore.transactional
        def consume_in_transaction(transaction, doc_ref) -> bool:
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                return False

            data = snapshot.to_dict() or {}
            if data.get("status") != CodeStatus.ISSUED.value:
                logger.warning(
                    f"Authorization code reuse attempt ({data.get('status')})",
                    extra={"client_id": data.get("client_id")},
                )
                return False

            now = datetime.now(UTC)
            if data["expires_at"] <= now:
                transaction.update(doc_ref, {"status": CodeStatus.EXPIRED.value})
                return False

            transaction.update(
                doc_ref, {"status": CodeStatus.CONSUMED.value, "consumed_at": now}
            )
            return True

        return consume_in_transaction(self._db.transaction(), doc_ref)


class FirestoreContextStore:
    """Firestore implementation of ContextStore keyed by code digest."""

    def __init__(self, db: firestore.Client, ttl_seconds: int | None = 600):
        self._contexts = db.collection(CONTEXTS_COLLECTION)
        self.ttl_seconds = ttl_seconds

    def save(
        self, request: ValidatedAuthorizationRequest, property: tuple[str, str]
    ) -> Context:
        context = Context.from_request(request, property, self.ttl_seconds)
        method = context.code_challenge_method

        self._contexts.document(code_digest(context.key)).set(
            {
                "client_id": context.client_id,
                "redirect_uri": context.redirect_uri,
                "scope": context.scope,
                "state": context.state,
                "code_challenge": context.code_challenge,
                "code_challenge_method": method.value if method else None,
                "property_name": property[0],
                "created_at": context.created_at,
                "expires_at": context.expires_at,
            }
        )
        return context

    def retrieve(self, request: ValidatedTokenRequest) -> Context | None:
        doc_ref = self._contexts.document(code_digest(request.code))
        doc = doc_ref.get()
        if not doc.exists:
            return None

        data = doc.to_dict()
        if data is None:
            return None

        context = Context(
            key=request.code,
            client_id=data["client_id"],
            redirect_uri=data.get("redirect_uri"),
            scope=data.get("scope"),
            state=data.get("state"),
            code_challenge=data.get("code_challenge"),
            code_challenge_method=data.get("code_challenge_method"),
            properties={data.get("property_name", "code"): request.code},
            created_at=data["created_at"],
            expires_at=data.get("expires_at"),
        )

        if context.is_expired():
            doc_ref.delete()
            logger.debug("Dropped expired context")
            return None

        if not context.matches(request):
            logger.warning(
                "Token request does not match the context of its code",
                extra={"client_id": request.client_id},
            )
            return None
        return context
