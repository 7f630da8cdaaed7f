"""Role checks for restricted fund operations.

Each restricted operation starts with one guard clause naming the role it
needs. The guard is a plain function so it can be tested on its own.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Set

from basketfund.utils.exceptions import UnauthorizedError


class Role(Enum):
    """Capabilities a caller can hold on a fund."""

    AGENT = "agent"  # sets weights, triggers rebalances
    OWNER = "owner"  # replaces the agent
    PUBLIC = "public"  # anyone


@dataclass
class FundRoles:
    """Addresses holding the privileged roles of one fund.

    The owner is fixed for the life of the fund here; the agent is
    replaceable by the owner.
    """

    owner: str
    agent: str

    def roles_of(self, caller: str) -> Set[Role]:
        roles = {Role.PUBLIC}
        if caller == self.agent:
            roles.add(Role.AGENT)
        if caller == self.owner:
            roles.add(Role.OWNER)
        return roles


def require_role(role: Role, caller: str, roles: FundRoles) -> None:
    """Reject the caller unless it holds ``role``.

    Raises:
        UnauthorizedError: If the caller does not hold the role
    """
    if role not in roles.roles_of(caller):
        raise UnauthorizedError(f"{caller} is not the fund {role.value}")
