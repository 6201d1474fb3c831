"""Role based access policy for tickets and their comments.

Every decision is a lookup in a single ``(role, action) -> scope`` table; the
scope then narrows the grant to tickets the actor owns or is assigned to.
Unknown roles and missing pairs deny.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from .enums import Action, Role
from .errors import Forbidden, ValidationError
from .models import Identity, Ticket


class AccessScope(str, Enum):
    ANY = "ANY"
    OWN = "OWN"
    ASSIGNED = "ASSIGNED"


class ScopeFilter(str, Enum):
    """Named listing shapes exposed to callers."""

    MY_TICKETS = "my-tickets"
    ASSIGNED = "assigned"
    ALL = "all"


_FILTER_SCOPES: Mapping[ScopeFilter, AccessScope] = {
    ScopeFilter.MY_TICKETS: AccessScope.OWN,
    ScopeFilter.ASSIGNED: AccessScope.ASSIGNED,
    ScopeFilter.ALL: AccessScope.ANY,
}


DEFAULT_RULES: Mapping[tuple[Role, Action], AccessScope] = {
    (Role.CUSTOMER, Action.CREATE): AccessScope.OWN,
    (Role.CUSTOMER, Action.VIEW): AccessScope.OWN,
    (Role.CUSTOMER, Action.COMMENT): AccessScope.OWN,
    (Role.AGENT, Action.VIEW): AccessScope.ASSIGNED,
    (Role.AGENT, Action.CHANGE_STATUS): AccessScope.ASSIGNED,
    (Role.AGENT, Action.COMMENT): AccessScope.ASSIGNED,
    (Role.AGENT, Action.VIEW_INTERNAL_COMMENTS): AccessScope.ANY,
    (Role.MANAGER, Action.VIEW): AccessScope.ANY,
    (Role.MANAGER, Action.CHANGE_STATUS): AccessScope.ANY,
    (Role.MANAGER, Action.ASSIGN): AccessScope.ANY,
    (Role.MANAGER, Action.COMMENT): AccessScope.ANY,
    (Role.MANAGER, Action.VIEW_INTERNAL_COMMENTS): AccessScope.ANY,
    (Role.ADMIN, Action.VIEW): AccessScope.ANY,
    (Role.ADMIN, Action.CHANGE_STATUS): AccessScope.ANY,
    (Role.ADMIN, Action.ASSIGN): AccessScope.ANY,
    (Role.ADMIN, Action.COMMENT): AccessScope.ANY,
    (Role.ADMIN, Action.VIEW_INTERNAL_COMMENTS): AccessScope.ANY,
}


class AccessPolicy:
    """Pure authorisation decisions over a closed set of (role, action) pairs."""

    def __init__(self, rules: Mapping[tuple[Role, Action], AccessScope] | None = None) -> None:
        self._rules = dict(rules if rules is not None else DEFAULT_RULES)

    def scope_for(self, role: Role | str | None, action: Action | str) -> AccessScope | None:
        parsed_role = Role.parse(role)
        try:
            parsed_action = Action(action)
        except ValueError:
            return None
        if parsed_role is None:
            return None
        return self._rules.get((parsed_role, parsed_action))

    def authorize(
        self,
        role: Role | str | None,
        action: Action | str,
        ticket: Ticket | None = None,
        actor_id: str | None = None,
    ) -> bool:
        """Return ``True`` when ``role`` may perform ``action``.

        Without a ticket only the role-level grant is checked; with one, the
        ownership or assignment constraint of the grant is enforced as well.
        """

        scope = self.scope_for(role, action)
        if scope is None:
            return False
        if scope == AccessScope.ANY or ticket is None:
            return True
        if actor_id is None:
            return False
        if scope == AccessScope.OWN:
            return ticket.customer_id == actor_id
        return ticket.assigned_agent_id is not None and ticket.assigned_agent_id == actor_id

    def require(self, identity: Identity, action: Action, ticket: Ticket | None = None) -> None:
        if not self.authorize(identity.role, action, ticket, identity.actor_id):
            raise Forbidden(
                action.value,
                role=identity.role.value if identity.role else None,
                ticket_id=ticket.id if ticket is not None else None,
            )

    def check_scope_filter(self, identity: Identity, scope: ScopeFilter) -> None:
        """Reject listing shapes that exceed the identity's VIEW grant."""

        granted = self.scope_for(identity.role, Action.VIEW)
        if granted is None:
            raise Forbidden(Action.VIEW.value, role=identity.role.value if identity.role else None)
        if granted != AccessScope.ANY and _FILTER_SCOPES[scope] != granted:
            raise Forbidden(f"{Action.VIEW.value} scope {scope.value}", role=identity.role.value)


def parse_scope_filter(value: ScopeFilter | str) -> ScopeFilter:
    try:
        return ScopeFilter(value)
    except ValueError as exc:
        raise ValidationError(f"Unrecognised scope filter: {value!r}", field="scope", value=value) from exc
