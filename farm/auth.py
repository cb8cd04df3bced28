from __future__ import annotations
from dataclasses import dataclass, field
from typing import Literal, Optional, Set
import logging

from .errors import Unauthorized

logger = logging.getLogger(__name__)

Capability = Literal["owner", "privileged"]

OWNER: Capability = "owner"
PRIVILEGED: Capability = "privileged"


@dataclass
class AuthorizationRegistry:
    """
    Owner plus a set of authorized callers.

    ``owner`` gates pool creation, weight changes and membership of the
    authorized set. ``privileged`` setters also accept authorized callers and,
    when a ``holder`` is passed, the current holder of that role.
    """
    owner: str
    authorized: Set[str] = field(default_factory=set)

    def is_authorized(self, caller: str) -> bool:
        return caller == self.owner or caller in self.authorized

    def allows(self, caller: str, capability: Capability, holder: Optional[str] = None) -> bool:
        if capability == OWNER:
            return caller == self.owner
        if capability == PRIVILEGED:
            return self.is_authorized(caller) or (holder is not None and caller == holder)
        raise ValueError(f"unknown capability: {capability}")

    def require(self, caller: str, capability: Capability, holder: Optional[str] = None) -> None:
        if not self.allows(caller, capability, holder):
            raise Unauthorized(
                "caller is not the owner" if capability == OWNER else "caller is not authorized",
                {"caller": caller, "capability": capability},
            )

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self.require(caller, OWNER)
        logger.info("[AUTH] owner %s -> %s", self.owner, new_owner)
        self.owner = new_owner

    def add_authorized(self, caller: str, addr: str) -> None:
        self.require(caller, OWNER)
        self.authorized.add(addr)
        logger.info("[AUTH] authorized %s", addr)

    def remove_authorized(self, caller: str, addr: str) -> None:
        self.require(caller, OWNER)
        self.authorized.discard(addr)
        logger.info("[AUTH] revoked %s", addr)
