"""
CORS policy for one listener, resolved from its `cors` table.

    [public.cors]
    origins = "*"                 # or ["https://a.example", ...]
    methods = ["GET", "POST"]
    headers = ["Authorization"]
    max-age = 3600

Wildcard and enumerated origins are exclusive. The policy reports which mode
is active; in wildcard mode the HTTP layer must not send credentialed
responses.
"""

import re
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from conduit.kernel.errors import ConfigurationError

WILDCARD = "*"

# RFC 7230 token
_TOKEN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


class OriginMode(str, Enum):
    WILDCARD = "wildcard"
    EXPLICIT = "explicit"


class CorsPolicy(BaseModel):
    """Resolved CORS settings for a listener."""

    model_config = ConfigDict(frozen=True)

    mode: OriginMode = OriginMode.EXPLICIT
    origins: frozenset[str] = frozenset()
    methods: tuple[str, ...] = ()
    headers: tuple[str, ...] = ()
    max_age_seconds: int = 0

    @property
    def is_wildcard(self) -> bool:
        return self.mode == OriginMode.WILDCARD

    @property
    def allow_credentials(self) -> bool:
        """Credentialed responses are only legal with enumerated origins."""
        return self.mode == OriginMode.EXPLICIT

    def allows_origin(self, origin: str) -> bool:
        if self.is_wildcard:
            return True
        return origin in self.origins

    @classmethod
    def from_table(cls, table: Optional[Mapping[str, Any]], listener: str = "") -> "CorsPolicy":
        """
        Parse a listener's cors table. A missing table denies every origin.

        Raises:
            ConfigurationError: On a malformed value
        """
        if table is None:
            return cls()
        if not isinstance(table, Mapping):
            raise ConfigurationError(f"{listener}.cors must be a table")

        mode, origins = _parse_origins(table.get("origins"), listener)
        methods = tuple(dict.fromkeys(
            m.upper() for m in _parse_tokens(table.get("methods"), f"{listener}.cors.methods")
        ))
        headers = _parse_tokens(table.get("headers"), f"{listener}.cors.headers")

        max_age = table.get("max-age", 0)
        if isinstance(max_age, bool) or not isinstance(max_age, int) or max_age < 0:
            raise ConfigurationError(
                f"{listener}.cors.max-age must be a non-negative integer, got {max_age!r}"
            )

        return cls(
            mode=mode,
            origins=origins,
            methods=methods,
            headers=headers,
            max_age_seconds=max_age,
        )


def _parse_origins(value: Any, listener: str) -> tuple[OriginMode, frozenset[str]]:
    key = f"{listener}.cors.origins"
    if value is None:
        return OriginMode.EXPLICIT, frozenset()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)) or not all(isinstance(o, str) for o in value):
        raise ConfigurationError(f"{key} must be \"*\" or a list of origin strings")

    origins = frozenset(o.strip() for o in value)
    if "" in origins:
        raise ConfigurationError(f"{key} contains an empty origin")
    if WILDCARD in origins:
        if len(origins) > 1:
            raise ConfigurationError(f"{key} cannot mix \"*\" with explicit origins")
        return OriginMode.WILDCARD, origins
    return OriginMode.EXPLICIT, origins


def _parse_tokens(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"{key} must be a list")
    for item in value:
        if not isinstance(item, str) or not _TOKEN.match(item):
            raise ConfigurationError(f"{key} contains an invalid entry: {item!r}")
    # Keep first occurrence order, drop duplicates
    return tuple(dict.fromkeys(value))
