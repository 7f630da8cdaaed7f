"""Unit tests for role checks."""

import pytest

from basketfund.engine.access import FundRoles, Role, require_role
from basketfund.utils.exceptions import UnauthorizedError


@pytest.fixture
def roles() -> FundRoles:
    """Create roles with distinct owner and agent."""
    return FundRoles(owner="0xowner", agent="0xagent")


class TestFundRoles:
    """Test role resolution."""

    def test_agent_roles(self, roles) -> None:
        """Test the agent holds AGENT and PUBLIC."""
        assert roles.roles_of("0xagent") == {Role.AGENT, Role.PUBLIC}

    def test_owner_roles(self, roles) -> None:
        """Test the owner holds OWNER and PUBLIC."""
        assert roles.roles_of("0xowner") == {Role.OWNER, Role.PUBLIC}

    def test_stranger_roles(self, roles) -> None:
        """Test anyone else is only PUBLIC."""
        assert roles.roles_of("0xstranger") == {Role.PUBLIC}

    def test_owner_can_be_agent(self) -> None:
        """Test one address may hold both roles."""
        roles = FundRoles(owner="0xboth", agent="0xboth")

        assert roles.roles_of("0xboth") == {Role.AGENT, Role.OWNER, Role.PUBLIC}


class TestRequireRole:
    """Test the guard clause."""

    def test_allowed(self, roles) -> None:
        """Test a caller with the role passes."""
        require_role(Role.AGENT, "0xagent", roles)
        require_role(Role.PUBLIC, "0xstranger", roles)

    def test_rejected(self, roles) -> None:
        """Test a caller without the role is rejected."""
        with pytest.raises(UnauthorizedError, match="not the fund agent"):
            require_role(Role.AGENT, "0xowner", roles)
