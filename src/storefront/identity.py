"""Bearer token to identity lookup."""

import json
import logging
from pathlib import Path

from .errors import AuthenticationError, ConfigError
from .models import Identity

log = logging.getLogger(__name__)


def parse_bearer(authorization: str | None) -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class TokenRegistry:
    """
    Maps opaque bearer tokens to identities.

    Tokens are issued by the login endpoints, which live outside this
    package; the registry only answers "who is this token".
    """

    def __init__(self, tokens: dict[str, Identity] | None = None):
        self._tokens: dict[str, Identity] = dict(tokens or {})

    @classmethod
    def from_file(cls, path: Path) -> "TokenRegistry":
        """
        Load tokens from a JSON file.

        Format: {"tokens": {"<token>": {"id": 1, "role": "customer", "email": "..."}}}
        A missing file yields an empty registry.

        Raises:
            ConfigError: If the file exists but can't be parsed.
        """
        if not path.exists():
            log.info("No token file at %s; only anonymous access is possible", path)
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            tokens = {
                token: Identity.from_dict(entry)
                for token, entry in data.get("tokens", {}).items()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise ConfigError(str(path), str(e)) from e

        return cls(tokens)

    def register(self, token: str, identity: Identity) -> None:
        self._tokens[token] = identity

    def resolve(self, token: str | None) -> Identity:
        """
        Resolve a token to an identity. No token means anonymous.

        Raises:
            AuthenticationError: If a token is given but unknown.
        """
        if token is None:
            return Identity.anonymous()
        identity = self._tokens.get(token)
        if identity is None:
            raise AuthenticationError("Invalid token")
        return identity
