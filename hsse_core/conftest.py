# hsse_core/conftest.py
import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from hsse_core.events.services import WorkflowService
from hsse_core.iam.roles import RoleCode
from hsse_core.iam.services.membership import ensure_member
from hsse_core.tenants.models import Tenant


def scope_headers(tenant):
    """
    Standard scope header used by the scope resolver.
    DRF test client requires HTTP_ prefix.
    """
    return {"HTTP_X_TENANT_ID": str(tenant.id)}


def make_user(tenant, username: str, roles=()):
    """
    Django user + active tenant membership holding `roles`.
    """
    User = get_user_model()
    user = User.objects.create_user(username=username, password="pass123", is_active=True)
    ensure_member(tenant_id=tenant.id, user_id=user.id, roles=roles, display_name=username)
    return user


@pytest.fixture
def tenant(db):
    return Tenant.objects.create(code="acme-refinery", name="Acme Refinery")


@pytest.fixture
def other_tenant(db):
    return Tenant.objects.create(code="other-site", name="Other Site")


@pytest.fixture
def reporter(tenant):
    return make_user(tenant, "reporter")


@pytest.fixture
def dept_rep(tenant):
    return make_user(tenant, "dept_rep", [RoleCode.DEPARTMENT_REPRESENTATIVE])


@pytest.fixture
def expert(tenant):
    return make_user(tenant, "expert", [RoleCode.HSSE_EXPERT])


@pytest.fixture
def manager(tenant):
    return make_user(tenant, "line_manager", [RoleCode.MANAGER])


@pytest.fixture
def hsse_manager(tenant):
    return make_user(tenant, "hsse_manager", [RoleCode.HSSE_MANAGER])


@pytest.fixture
def second_hsse_manager(tenant):
    return make_user(tenant, "hsse_manager_2", [RoleCode.HSSE_MANAGER])


@pytest.fixture
def investigator(tenant):
    return make_user(tenant, "investigator", [RoleCode.INVESTIGATOR])


@pytest.fixture
def make_event(tenant, reporter):
    """
    Factory: creates an event (status `new`) reported by `reporter`.
    """
    def _make(**overrides):
        kwargs = {"event_type": "incident", "title": "Slip near loading bay"}
        kwargs.update(overrides)
        return WorkflowService.create_event(tenant_id=tenant.id, reporter_id=reporter.id, **kwargs)

    return _make


@pytest.fixture
def act(tenant):
    """
    Applies a workflow action and returns the refreshed event.
    Domain errors propagate so tests can assert on them.
    """
    def _act(event, user, action, **payload):
        updated, _ = WorkflowService.apply_action(
            tenant_id=tenant.id,
            event_id=event.id,
            actor_id=user.id,
            action_name=action,
            payload=payload,
        )
        return updated

    return _act


@pytest.fixture
def approved_incident(make_event, act, reporter, dept_rep, expert, manager):
    """
    Level 3 incident approved by its designated manager (status investigation_pending).
    """
    event = make_event()
    event = act(event, reporter, "submit")
    event = act(event, dept_rep, "dept_rep_approve")
    event = act(event, expert, "expert_approve", severity=3, approver_id=manager.id)
    return act(event, manager, "manager_approve")


@pytest.fixture
def client_for(tenant):
    """
    Factory: APIClient authenticated as `user` with the tenant scope header set.
    """
    def _client(user, *, scoped=True):
        c = APIClient()
        c.force_authenticate(user=user)
        if scoped:
            c.credentials(**scope_headers(tenant))
        return c

    return _client


@pytest.fixture
def member_factory(tenant):
    def _make(username: str, roles=()):
        return make_user(tenant, username, roles)

    return _make
