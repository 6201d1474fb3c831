import pytest

from helpdesk.tickets import AccessPolicy, Action, Forbidden, Identity, Role, ScopeFilter


@pytest.fixture
def policy() -> AccessPolicy:
    return AccessPolicy()


@pytest.mark.parametrize("role", ["SUPPORT", "", None, "root", 42])
def test_unknown_roles_are_denied_everything(policy, make_ticket, role):
    ticket = make_ticket(assigned_agent_id="agent-1")
    for action in Action:
        assert policy.authorize(role, action, ticket, "cust-a") is False
        assert policy.authorize(role, action) is False


def test_unknown_action_is_denied(policy, make_ticket):
    assert policy.authorize(Role.ADMIN, "DELETE", make_ticket(), "admin-1") is False


def test_customer_views_only_own_tickets(policy, make_ticket):
    ticket = make_ticket(customer_id="cust-a")

    assert policy.authorize(Role.CUSTOMER, Action.VIEW, ticket, "cust-a") is True
    assert policy.authorize(Role.CUSTOMER, Action.VIEW, ticket, "cust-b") is False


def test_customer_b_is_forbidden_from_customer_a_ticket(policy, make_ticket, other_customer):
    with pytest.raises(Forbidden):
        policy.require(other_customer, Action.VIEW, make_ticket(customer_id="cust-a"))


def test_agent_needs_assignment(policy, make_ticket):
    assigned = make_ticket(assigned_agent_id="agent-1")
    unassigned = make_ticket(assigned_agent_id=None)

    for action in (Action.VIEW, Action.CHANGE_STATUS, Action.COMMENT):
        assert policy.authorize(Role.AGENT, action, assigned, "agent-1") is True
        assert policy.authorize(Role.AGENT, action, assigned, "agent-2") is False
        assert policy.authorize(Role.AGENT, action, unassigned, "agent-1") is False

    assert policy.authorize(Role.AGENT, Action.ASSIGN, assigned, "agent-1") is False
    assert policy.authorize(Role.AGENT, Action.VIEW_INTERNAL_COMMENTS, unassigned, "agent-1") is True


@pytest.mark.parametrize("role", [Role.MANAGER, Role.ADMIN])
def test_managers_and_admins_act_on_all_tickets(policy, make_ticket, role):
    ticket = make_ticket(customer_id="cust-a", assigned_agent_id="agent-9")
    for action in (Action.VIEW, Action.CHANGE_STATUS, Action.ASSIGN, Action.COMMENT, Action.VIEW_INTERNAL_COMMENTS):
        assert policy.authorize(role, action, ticket, "staff-1") is True
    assert policy.authorize(role, Action.CREATE, None, "staff-1") is False


def test_only_customers_create(policy):
    assert policy.authorize(Role.CUSTOMER, Action.CREATE, None, "cust-a") is True
    for role in (Role.AGENT, Role.MANAGER, Role.ADMIN):
        assert policy.authorize(role, Action.CREATE, None, "x") is False


def test_customer_denied_staff_actions(policy, make_ticket):
    ticket = make_ticket(customer_id="cust-a")
    for action in (Action.CHANGE_STATUS, Action.ASSIGN, Action.VIEW_INTERNAL_COMMENTS):
        assert policy.authorize(Role.CUSTOMER, action, ticket, "cust-a") is False


def test_roles_accept_string_tokens(policy, make_ticket):
    assert policy.authorize("manager", "VIEW", make_ticket(), "mgr-1") is True


def test_scope_filters_follow_view_grant(policy, customer, agent, manager):
    policy.check_scope_filter(customer, ScopeFilter.MY_TICKETS)
    policy.check_scope_filter(agent, ScopeFilter.ASSIGNED)
    for scope in ScopeFilter:
        policy.check_scope_filter(manager, scope)

    with pytest.raises(Forbidden):
        policy.check_scope_filter(customer, ScopeFilter.ALL)
    with pytest.raises(Forbidden):
        policy.check_scope_filter(agent, ScopeFilter.MY_TICKETS)
    with pytest.raises(Forbidden):
        policy.check_scope_filter(Identity.of("x", "GUEST"), ScopeFilter.MY_TICKETS)
