"""
Capability enforcement for routes gated by deployment configuration.
"""

from fastapi import Depends, HTTPException, Request, status

from conduit.kernel.capabilities import Capability, ResourceType
from conduit.logging_config import get_logger

logger = get_logger(__name__)


def require_capability(resource_type: ResourceType, capability: Capability):
    """
    Dependency that rejects the request with 403 when the capability is
    disabled in the listener's configuration snapshot.
    """

    async def _check(request: Request) -> None:
        config = request.app.state.config_holder.current
        if not config.capabilities.resolve(resource_type, capability):
            logger.info(
                "Capability denied",
                extra={"resource": resource_type.value, "capability": capability.value},
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{resource_type.value}.{capability.value} is disabled",
            )

    return Depends(_check)
