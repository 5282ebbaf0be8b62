"""
CORS enforcement that follows configuration reloads.

The listener's policy is read from the current snapshot on every request.
Starlette's CORSMiddleware does the header work; a new instance is built
whenever the policy in the snapshot changes.
"""

from typing import Optional

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from conduit.config import ConfigHolder
from conduit.kernel.cors import WILDCARD, CorsPolicy
from conduit.logging_config import get_logger

logger = get_logger(__name__)


class ListenerCorsMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        holder: ConfigHolder,
        listener_name: str,
        expose_headers: tuple[str, ...] = (),
    ):
        self.app = app
        self.holder = holder
        self.listener_name = listener_name
        self.expose_headers = list(expose_headers)
        self._policy: Optional[CorsPolicy] = None
        self._delegate: Optional[CORSMiddleware] = None

    def _middleware_for(self, policy: CorsPolicy) -> CORSMiddleware:
        if self._delegate is None or policy != self._policy:
            if self._policy is not None:
                logger.info(
                    "CORS policy changed",
                    extra={"listener": self.listener_name, "cors_mode": policy.mode.value},
                )
            self._delegate = CORSMiddleware(
                self.app,
                allow_origins=[WILDCARD] if policy.is_wildcard else sorted(policy.origins),
                allow_credentials=policy.allow_credentials,
                allow_methods=list(policy.methods),
                allow_headers=list(policy.headers),
                expose_headers=self.expose_headers,
                max_age=policy.max_age_seconds,
            )
            self._policy = policy
        return self._delegate

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        policy = self.holder.current.cors(self.listener_name)
        await self._middleware_for(policy)(scope, receive, send)
