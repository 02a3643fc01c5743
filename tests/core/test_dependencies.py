"""
Route Dependency Tests
======================

require_permission / require_role / require_system_admin mounted on a throwaway
router, so the factories are exercised independently of the admin modules.
"""

import pytest
from fastapi import APIRouter, Depends, FastAPI
from fastapi.testclient import TestClient

from panel.config.permissions_config import Permission, RoleType
from panel.core.dependencies import (
    AccessContext,
    get_access_context,
    require_permission,
    require_role,
    require_system_admin,
)
from panel.database.supabase_client import get_service_supabase, get_supabase
from panel.main import panel_error_handler
from panel.core.errors import PanelError


pytestmark = pytest.mark.unit

router = APIRouter()


@router.get("/scoped")
def scoped(context: AccessContext = Depends(require_permission(Permission.VIEW_ORG_ANALYTICS, "organization_id"))):
    return {"user_id": context.user_id}


@router.get("/orgs/{organization_id}/admin")
def org_admin_only(context: AccessContext = Depends(require_role(RoleType.ORG_ADMIN, "organization_id"))):
    return {"user_id": context.user_id}


@router.get("/system")
def system_only(context: AccessContext = Depends(require_system_admin)):
    return {"user_id": context.user_id}


@router.get("/twice")
def twice(
    first: AccessContext = Depends(get_access_context),
    second: AccessContext = Depends(require_permission(Permission.USER_BASIC)),
):
    return {"same": first is second}


@pytest.fixture
def scoped_app(fake_supabase) -> TestClient:
    app = FastAPI()
    app.include_router(router)
    app.add_exception_handler(PanelError, panel_error_handler)
    app.dependency_overrides[get_supabase] = lambda: fake_supabase
    app.dependency_overrides[get_service_supabase] = lambda: fake_supabase
    return TestClient(app)


class TestRequirePermission:
    def test_query_param_scope(self, scoped_app, auth_headers):
        """Test that the organization id is read from the query string."""
        assert scoped_app.get("/scoped?organization_id=org-1", headers=auth_headers("orgadmin")).status_code == 200

        denied = scoped_app.get("/scoped?organization_id=org-2", headers=auth_headers("orgadmin"))
        assert denied.status_code == 403
        assert denied.json()["organization_id"] == "org-2"

    def test_unscoped_when_param_missing(self, scoped_app, auth_headers):
        """Test that a missing scope parameter checks across all assignments."""
        assert scoped_app.get("/scoped", headers=auth_headers("orgadmin")).status_code == 200

    def test_no_token(self, scoped_app):
        """Test that a missing bearer header is a 401 before any gate runs."""
        response = scoped_app.get("/scoped")

        assert response.status_code == 401
        assert response.json()["kind"] == "Unauthenticated"

    def test_context_shared_within_request(self, scoped_app, auth_headers):
        """Test that one request builds one AccessContext."""
        assert scoped_app.get("/twice", headers=auth_headers("member")).json() == {"same": True}


class TestRequireRole:
    def test_path_param_scope(self, scoped_app, auth_headers):
        """Test role checks scoped by path parameter."""
        assert scoped_app.get("/orgs/org-1/admin", headers=auth_headers("orgadmin")).status_code == 200
        assert scoped_app.get("/orgs/org-2/admin", headers=auth_headers("orgadmin")).status_code == 403

    def test_system_admin_satisfies_any_role(self, scoped_app, auth_headers):
        assert scoped_app.get("/orgs/org-2/admin", headers=auth_headers("admin")).status_code == 200

    def test_expired_assignment_denied(self, scoped_app, auth_headers):
        response = scoped_app.get("/orgs/org-1/admin", headers=auth_headers("expired"))

        assert response.status_code == 403
        assert response.json()["role"] == "org_admin"


class TestRequireSystemAdmin:
    @pytest.mark.parametrize("name,status", [("admin", 200), ("orgadmin", 403), ("member", 403)])
    def test_only_system_admins(self, scoped_app, auth_headers, name, status):
        assert scoped_app.get("/system", headers=auth_headers(name)).status_code == status
