"""Role and ownership checks shared by the state machines"""

import uuid
from typing import Optional

from rentease_ledger.domain.exceptions import AuthorizationError, ValidationError
from rentease_ledger.domain.models import Role
from rentease_ledger.infrastructure.database.models import User


def require_role(user: User, role: Role, message: str) -> None:
    if user.role != role.value:
        raise AuthorizationError(message)


def require_owner(owner_id: uuid.UUID, user: User, message: str = "Unauthorized") -> None:
    if owner_id != user.id:
        raise AuthorizationError(message)


def parse_uuid(value: Optional[str], label: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label} format") from None
