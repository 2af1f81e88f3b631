"""Secret storage contract and the implementations shipped with the service."""

import threading
from typing import Protocol

import structlog
from decouple import config

logger = structlog.get_logger()

JIRA_API_TOKEN = "jira_api_token"

# Environment variable consulted for each purpose by EnvCredentialStore.
ENV_VARIABLES = {
    JIRA_API_TOKEN: "JIRA_API_TOKEN",
}


class CredentialStore(Protocol):
    """Opaque secret storage keyed by purpose."""

    def save(self, purpose: str, secret: str) -> None: ...

    def get(self, purpose: str) -> str | None: ...

    def delete(self, purpose: str) -> None: ...


class MemoryCredentialStore:
    """Process-local secrets; nothing touches disk."""

    def __init__(self, secrets: dict[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})
        self._lock = threading.Lock()

    def save(self, purpose: str, secret: str) -> None:
        with self._lock:
            self._secrets[purpose] = secret
        logger.info("Credential saved", purpose=purpose)

    def get(self, purpose: str) -> str | None:
        with self._lock:
            return self._secrets.get(purpose)

    def delete(self, purpose: str) -> None:
        with self._lock:
            self._secrets.pop(purpose, None)
        logger.info("Credential deleted", purpose=purpose)


class EnvCredentialStore(MemoryCredentialStore):
    """Reads secrets from the environment / .env, with in-process overrides.

    Saved secrets shadow the environment until deleted; deleting a purpose
    also hides its environment value for the rest of the process.
    """

    def __init__(self) -> None:
        super().__init__()
        self._deleted: set[str] = set()

    def save(self, purpose: str, secret: str) -> None:
        self._deleted.discard(purpose)
        super().save(purpose, secret)

    def get(self, purpose: str) -> str | None:
        secret = super().get(purpose)
        if secret is not None or purpose in self._deleted:
            return secret

        variable = ENV_VARIABLES.get(purpose, purpose.upper())
        return config(variable, default=None) or None

    def delete(self, purpose: str) -> None:
        self._deleted.add(purpose)
        super().delete(purpose)
