"""Role gates for engine operations."""

from installment_ledger.exceptions import ForbiddenError
from installment_ledger.models import Actor, Role

ADMIN_ROLES = frozenset({Role.ADMIN, Role.MODERATOR})
CASH_DESK_ROLES = frozenset({Role.ADMIN, Role.MODERATOR, Role.CASHIER})
FIELD_ROLES = frozenset({Role.MANAGER, Role.SELLER})
REMINDER_ROLES = frozenset({Role.ADMIN, Role.MODERATOR, Role.MANAGER})
CONTRACT_ROLES = frozenset({Role.ADMIN, Role.MODERATOR, Role.SELLER})

SYSTEM_USER = "system"


def require_role(actor: Actor, allowed: frozenset[Role], operation: str) -> None:
    """Raise ``ForbiddenError`` unless the actor holds one of ``allowed``."""
    if actor.role not in allowed:
        raise ForbiddenError(f"Role {actor.role.value} may not {operation}")
