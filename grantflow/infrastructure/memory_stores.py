"""
In-memory implementations of the grant ports.

Useful for testing and local development without Firestore.
Data is lost when the application restarts, and is not shared between
processes.
"""

import logging
import threading
from datetime import UTC, datetime, timedelta

from authlib.common.security import generate_token

from grantflow.core.domain import (
    Client,
    CodeStatus,
    Context,
    IssuedCode,
    ValidatedAuthorizationRequest,
    ValidatedTokenRequest,
)
from grantflow.core.ports import ClientRegistry, CodeStore, ContextStore

logger = logging.getLogger(__name__)

DEFAULT_CODE_LENGTH = 48


class InMemoryClientRegistry(ClientRegistry):
    """In-memory client registry, seeded from configuration or tests."""

    def __init__(self, clients: list[Client] | None = None):
        self._clients: dict[str, Client] = {}
        for client in clients or []:
            self.register(client)

    def register(self, client: Client) -> Client:
        if client.client_id in self._clients:
            raise ValueError(f"Client {client.client_id} already registered")
        self._clients[client.client_id] = client
        logger.info(f"Registered client: {client.client_id}")
        return client

    def retrieve_client(self, client_id: str) -> Client | None:
        return self._clients.get(client_id)


class InMemoryCodeStore(CodeStore):
    """
    In-memory authorization code store.

    All state transitions happen under one lock, so concurrent consume()
    calls for the same code linearize and at most one returns True.
    Records past their expiry are dropped on the next issue().
    """

    def __init__(self, ttl_seconds: int = 600, code_length: int = DEFAULT_CODE_LENGTH):
        self.ttl_seconds = ttl_seconds
        self.code_length = code_length
        self._codes: dict[str, IssuedCode] = {}
        self._lock = threading.Lock()

    def issue(self, request: ValidatedAuthorizationRequest) -> str:
        now = datetime.now(UTC)
        with self._lock:
            self._prune_expired(now)

            code = generate_token(self.code_length)
            while code in self._codes:
                code = generate_token(self.code_length)

            self._codes[code] = IssuedCode(
                code=code,
                client_id=request.client_id,
                redirect_uri=request.redirect_uri,
                scope=request.scope,
                issued_at=now,
                expires_at=now + timedelta(seconds=self.ttl_seconds),
            )
        return code

    def consume(self, code: str) -> bool:
        with self._lock:
            issued = self._codes.get(code)
            if issued is None:
                return False

            if issued.status != CodeStatus.ISSUED:
                logger.warning(
                    f"Authorization code reuse attempt ({issued.status.value})",
                    extra={"client_id": issued.client_id},
                )
                return False

            if issued.is_expired():
                issued.status = CodeStatus.EXPIRED
                return False

            issued.status = CodeStatus.CONSUMED
            return True

    def get(self, code: str) -> IssuedCode | None:
        """Return the stored record for a code, if any."""
        with self._lock:
            return self._codes.get(code)

    def _prune_expired(self, now: datetime) -> None:
        # Caller holds the lock
        expired = [code for code, issued in self._codes.items() if issued.is_expired(now)]
        for code in expired:
            del self._codes[code]


class InMemoryContextStore(ContextStore):
    """
    In-memory context store keyed by authorization code.

    Expired contexts are dropped on the next save() or when their code is
    looked up.
    """

    def __init__(self, ttl_seconds: int | None = 600):
        self.ttl_seconds = ttl_seconds
        self._contexts: dict[str, Context] = {}
        self._lock = threading.Lock()

    def save(
        self, request: ValidatedAuthorizationRequest, property: tuple[str, str]
    ) -> Context:
        context = Context.from_request(request, property, self.ttl_seconds)
        with self._lock:
            self._prune_expired(context.created_at)
            self._contexts[context.key] = context
        return context

    def _prune_expired(self, now: datetime) -> None:
        # Caller holds the lock
        expired = [key for key, saved in self._contexts.items() if saved.is_expired(now)]
        for key in expired:
            del self._contexts[key]

    def retrieve(self, request: ValidatedTokenRequest) -> Context | None:
        with self._lock:
            context = self._contexts.get(request.code)
            if context is None:
                return None

            if context.is_expired():
                del self._contexts[request.code]
                logger.debug("Dropped expired context")
                return None

        if not context.matches(request):
            logger.warning(
                "Token request does not match the context of its code",
                extra={"client_id": request.client_id},
            )
            return None
        return context
