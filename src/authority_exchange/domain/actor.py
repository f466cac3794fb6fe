"""The identity on whose behalf an operation runs."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from authority_exchange.domain.enums import UserRole


@dataclass(frozen=True)
class Actor:
    """An authenticated caller, as asserted by the identity gateway."""

    id: uuid.UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN
