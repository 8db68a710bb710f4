"""
Shared request dependencies: the application container and moderator /
signature authentication.
"""
import logging
from typing import Optional

from fastapi import Header, Request

from bountyboard.core.container import Container
from bountyboard.core.errors import Unauthorized, UpstreamUnavailable
from bountyboard.services.reputation import IdentityServiceError

logger = logging.getLogger(__name__)


def get_container(request: Request) -> Container:
    return request.app.state.container


def internal_key_header(x_internal_key: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_internal_key


def require_moderator(container: Container, key: Optional[str], message: str = "Invalid internal key") -> None:
    if not container.is_moderator(key):
        raise Unauthorized(message, hint="Provide a valid x-internal-key header.")


async def verify_signed(container: Container, address: str, message: str, signature: str) -> bool:
    """Check a signature with the identity service; an unreachable service is an operator problem."""
    try:
        return await container.reputation.verify_signature(address, message, signature)
    except IdentityServiceError as e:
        logger.error("[AUTH] Signature verification unavailable: %s", e)
        raise UpstreamUnavailable("Signature verification unavailable") from e
