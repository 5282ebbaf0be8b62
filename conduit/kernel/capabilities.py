"""
Per-deployment feature gating.

Each resource type exposes a fixed set of boolean capabilities read from its
configuration block:

    [User]     allow_register
    [Profile]  allow_update
    [Article]  allow_update, allow_delete, allow_comments

Comments have no block of their own; they follow Article.allow_comments.
Anything not listed, or not configured, resolves to False.
"""

from enum import Enum
from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict

from conduit.kernel.errors import ConfigurationError
from conduit.logging_config import get_logger

logger = get_logger(__name__)


class ResourceType(str, Enum):
    """Resource types a listener can serve or gate."""
    USER = "User"
    PROFILE = "Profile"
    ARTICLE = "Article"
    TAG = "Tag"
    COMMENT = "Comment"


class Capability(str, Enum):
    """Named feature flags."""
    ALLOW_REGISTER = "allow_register"
    ALLOW_UPDATE = "allow_update"
    ALLOW_DELETE = "allow_delete"
    ALLOW_COMMENTS = "allow_comments"


KNOWN_CAPABILITIES: dict[ResourceType, frozenset[Capability]] = {
    ResourceType.USER: frozenset({Capability.ALLOW_REGISTER}),
    ResourceType.PROFILE: frozenset({Capability.ALLOW_UPDATE}),
    ResourceType.ARTICLE: frozenset({
        Capability.ALLOW_UPDATE,
        Capability.ALLOW_DELETE,
        Capability.ALLOW_COMMENTS,
    }),
}

# (resource, capability) pairs answered by another pair
DELEGATED: dict[tuple[ResourceType, Capability], tuple[ResourceType, Capability]] = {
    (ResourceType.COMMENT, Capability.ALLOW_COMMENTS): (ResourceType.ARTICLE, Capability.ALLOW_COMMENTS),
}


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


class CapabilitySet(BaseModel):
    """Resolved, immutable capability flags for one deployment."""

    model_config = ConfigDict(frozen=True)

    enabled: frozenset[tuple[ResourceType, Capability]] = frozenset()

    def resolve(
        self,
        resource_type: Union[ResourceType, str],
        capability: Union[Capability, str],
    ) -> bool:
        """Return True only if the capability is known and enabled."""
        resource = _coerce(ResourceType, resource_type)
        cap = _coerce(Capability, capability)
        if resource is None or cap is None:
            return False
        resource, cap = DELEGATED.get((resource, cap), (resource, cap))
        return (resource, cap) in self.enabled

    def for_resource(self, resource_type: ResourceType) -> dict[str, bool]:
        """All known flags of one resource type, resolved."""
        return {
            cap.value: self.resolve(resource_type, cap)
            for cap in sorted(KNOWN_CAPABILITIES.get(resource_type, ()), key=lambda c: c.value)
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "CapabilitySet":
        """
        Read capability blocks from a configuration document.

        Raises:
            ConfigurationError: If a known flag holds a non-boolean value
        """
        enabled = set()
        for resource, capabilities in KNOWN_CAPABILITIES.items():
            block = document.get(resource.value)
            if block is None:
                continue
            if not isinstance(block, Mapping):
                raise ConfigurationError(f"[{resource.value}] must be a table")
            for key, value in block.items():
                cap = _coerce(Capability, key)
                if cap is None or cap not in capabilities:
                    logger.warning(
                        "Ignoring unknown capability",
                        extra={"resource": resource.value, "capability": key},
                    )
                    continue
                if not isinstance(value, bool):
                    raise ConfigurationError(
                        f"{resource.value}.{key} must be a boolean, got {value!r}"
                    )
                if value:
                    enabled.add((resource, cap))
        return cls(enabled=frozenset(enabled))
