"""
Client Guard Tests
==================

PermissionClient, AuthSession and PermissionGuard against an httpx.MockTransport:
- loading -> granted/denied transitions
- fail-closed on transport and HTTP errors
- re-evaluation on requirement and session changes
- redirect through the navigation callback
"""

from typing import Dict, List
import asyncio

import httpx
import pytest

from panel.client.guard import GuardState, PermissionGuard
from panel.client.session import AuthSession, PermissionClient
from panel.client.snapshot import PermissionSnapshot
from panel.config.permissions_config import Permission, RoleType


pytestmark = pytest.mark.unit

ORG_ADMIN_SNAPSHOT = {
    "permissions": [
        "org:admin", "org:analytics:view", "org:apis:manage", "org:invitations:manage",
        "org:settings:manage", "org:users:manage", "user:apis:access", "user:basic", "user:dashboard:view",
    ],
    "roles": [{
        "role_type": "org_admin",
        "organization_id": "org-1",
        "permissions": [
            "org:admin", "org:analytics:view", "org:apis:manage", "org:invitations:manage",
            "org:settings:manage", "org:users:manage", "user:apis:access", "user:basic", "user:dashboard:view",
        ],
        "expires_at": None,
    }],
    "organizations": [{"id": "org-1", "name": "Acme", "slug": "acme"}],
    "isSystemAdmin": False,
    "catalog_version": "2024.1",
}

SNAPSHOTS: Dict[str, dict] = {
    "orgadmin-token": ORG_ADMIN_SNAPSHOT,
    "admin-token": {
        "permissions": [p.value for p in Permission],
        "roles": [{"role_type": "system_admin", "organization_id": None, "permissions": [p.value for p in Permission]}],
        "organizations": [],
        "isSystemAdmin": True,
        "catalog_version": "2024.1",
    },
}


class Recorder:
    def __init__(self):
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token == "broken-token":
            return httpx.Response(500, json={"error": "boom", "kind": "StoreError"})
        if token == "offline-token":
            raise httpx.ConnectError("connection refused", request=request)
        if token == "garbage-token":
            return httpx.Response(200, content=b"<html>not json</html>")
        return httpx.Response(200, json=SNAPSHOTS.get(token, {"permissions": [], "roles": [], "organizations": []}))


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def session(recorder) -> AuthSession:
    client = PermissionClient(base_url="http://panel.test", transport=httpx.MockTransport(recorder))
    return AuthSession(client)


class TestSnapshotPredicates:
    """Predicates evaluated against the snapshot only."""

    def test_org_scoped_permission(self):
        """Test that per-grant lists scope permissions by organization."""
        snapshot = PermissionSnapshot.model_validate(ORG_ADMIN_SNAPSHOT)

        assert snapshot.has_permission(Permission.MANAGE_ORG_USERS)
        assert snapshot.has_permission(Permission.MANAGE_ORG_USERS, "org-1")
        assert not snapshot.has_permission(Permission.MANAGE_ORG_USERS, "org-2")
        assert not snapshot.has_permission(Permission.MANAGE_SYSTEM_USERS)

    def test_roles(self):
        """Test role predicates and their combinators."""
        snapshot = PermissionSnapshot.model_validate(ORG_ADMIN_SNAPSHOT)

        assert snapshot.has_role(RoleType.ORG_ADMIN, "org-1")
        assert not snapshot.has_role(RoleType.ORG_ADMIN, "org-2")
        assert snapshot.has_any_role([RoleType.USER, RoleType.ORG_ADMIN])
        assert not snapshot.has_all_roles([RoleType.USER, RoleType.ORG_ADMIN])

    def test_system_admin_short_circuit(self):
        """Test that isSystemAdmin satisfies everything."""
        snapshot = PermissionSnapshot.model_validate(SNAPSHOTS["admin-token"])

        assert snapshot.has_permission("anything:at:all", "org-9")
        assert snapshot.has_all_permissions([Permission.ORG_ADMIN, Permission.SYSTEM_ADMIN], "org-2")

    def test_empty_snapshot_denies(self):
        """Test the empty snapshot grants nothing."""
        snapshot = PermissionSnapshot.empty()

        assert not snapshot.has_permission(Permission.USER_BASIC)
        assert not snapshot.has_any_role(list(RoleType))


class TestAuthSession:
    """Session lifecycle and fail-closed fetching."""

    @pytest.mark.asyncio
    async def test_sign_in_fetches_with_bearer(self, session, recorder):
        """Test that sign_in fetches the snapshot with the token."""
        snapshot = await session.sign_in("orgadmin-token")

        assert snapshot.has_permission(Permission.ORG_ADMIN, "org-1")
        assert len(recorder.requests) == 1
        assert recorder.requests[0].url.path == "/api/v1/auth/permissions"
        assert recorder.requests[0].headers["Authorization"] == "Bearer orgadmin-token"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["broken-token", "offline-token", "garbage-token"])
    async def test_fetch_failure_fails_closed(self, session, token):
        """Test that HTTP, transport and decoding failures leave the empty snapshot."""
        snapshot = await session.sign_in(token)

        assert snapshot.permissions == []
        assert not snapshot.is_system_admin
        assert session.error is not None

    @pytest.mark.asyncio
    async def test_sign_out_clears_and_notifies(self, session):
        """Test that sign_out empties the snapshot and notifies listeners."""
        seen = []
        session.subscribe(lambda s: seen.append(s.authenticated))
        await session.sign_in("admin-token")

        await session.sign_out()

        assert session.snapshot.permissions == []
        assert seen[-1] is False

    @pytest.mark.asyncio
    async def test_client_raises_on_error_status(self, recorder):
        """Test that PermissionClient itself surfaces non-2xx responses."""
        async with PermissionClient(base_url="http://panel.test", transport=httpx.MockTransport(recorder)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.fetch_snapshot("broken-token")


class TestPermissionGuard:
    """State machine and rendering."""

    @pytest.mark.asyncio
    async def test_loading_then_granted(self, session):
        """Test loading before mount and granted after."""
        session.token = "orgadmin-token"
        guard = PermissionGuard(session, permission=Permission.MANAGE_ORG_USERS, organization_id="org-1")

        assert guard.state == GuardState.LOADING
        assert guard.render("content") is None

        assert await guard.mount() == GuardState.GRANTED
        assert guard.render("content") == "content"

    @pytest.mark.asyncio
    async def test_denied_renders_fallback_and_redirects(self, session):
        """Test denial with fallback and navigation."""
        navigated = []
        await session.sign_in("orgadmin-token")
        guard = PermissionGuard(
            session, permission=Permission.MANAGE_ORG_USERS, organization_id="org-2",
            fallback="no access", redirect_to="/dashboard", navigate=navigated.append,
        )

        await guard.mount()

        assert guard.state == GuardState.DENIED
        assert guard.render("content") == "no access"
        assert navigated == ["/dashboard"]

    @pytest.mark.asyncio
    async def test_denied_without_fallback_renders_nothing(self, session):
        """Test that the default fallback is nothing."""
        await session.sign_in("orgadmin-token")
        guard = PermissionGuard(session, role=RoleType.SYSTEM_ADMIN)

        await guard.mount()

        assert guard.render("content") is None

    @pytest.mark.asyncio
    async def test_no_requirements_allows(self, session):
        """Test that a guard without requirements grants access."""
        await session.sign_in("member-token")
        guard = PermissionGuard(session)

        assert await guard.mount() == GuardState.GRANTED

    @pytest.mark.asyncio
    async def test_fetch_failure_denies(self, session):
        """Test that a failed snapshot fetch denies."""
        session.token = "offline-token"
        guard = PermissionGuard(session, permission=Permission.USER_BASIC)

        assert await guard.mount() == GuardState.DENIED

    @pytest.mark.asyncio
    async def test_mount_fetches_once(self, session, recorder):
        """Test that guards sharing a session share one fetch."""
        session.token = "orgadmin-token"
        first = PermissionGuard(session, permission=Permission.ORG_ADMIN)
        second = PermissionGuard(session, role=RoleType.ORG_ADMIN)

        await first.mount()
        await second.mount()

        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_update_reevaluates_only_on_change(self, session, recorder):
        """Test that update re-evaluates without refetching and ignores no-ops."""
        await session.sign_in("orgadmin-token")
        guard = PermissionGuard(session, permission=Permission.MANAGE_ORG_USERS, organization_id="org-1")
        await guard.mount()

        assert guard.update(organization_id="org-1") is False
        assert guard.update(organization_id="org-2") is True
        assert guard.state == GuardState.DENIED
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_session_change_reevaluates(self, session):
        """Test that sign in and sign out flip a mounted guard."""
        guard = PermissionGuard(session, permission=Permission.SYSTEM_ADMIN)
        await guard.mount()
        assert guard.state == GuardState.DENIED

        await session.sign_in("admin-token")
        assert guard.state == GuardState.GRANTED

        await session.sign_out()
        assert guard.state == GuardState.DENIED

    @pytest.mark.asyncio
    async def test_unmount_detaches(self, session):
        """Test that an unmounted guard ignores session changes."""
        guard = PermissionGuard(session, permission=Permission.SYSTEM_ADMIN)
        await guard.mount()
        guard.unmount()

        await session.sign_in("admin-token")

        assert guard.state == GuardState.DENIED

    @pytest.mark.asyncio
    async def test_permissions_any_and_all(self, session):
        """Test permissions lists with and without require_all."""
        await session.sign_in("orgadmin-token")
        mixed = [Permission.MANAGE_ORG_USERS, Permission.MANAGE_SYSTEM_USERS]

        any_guard = PermissionGuard(session, permissions=mixed)
        all_guard = PermissionGuard(session, permissions=mixed, require_all=True)

        assert await any_guard.mount() == GuardState.GRANTED
        assert await all_guard.mount() == GuardState.DENIED


class HeldRecorder(Recorder):
    """Holds responses for held_token until release is set."""

    def __init__(self, held_token: str):
        super().__init__()
        self.held_token = held_token
        self.release = asyncio.Event()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization") == f"Bearer {self.held_token}":
            await self.release.wait()
        return super().__call__(request)


@pytest.fixture
def held() -> HeldRecorder:
    return HeldRecorder("orgadmin-token")


@pytest.fixture
def slow_session(held) -> AuthSession:
    client = PermissionClient(base_url="http://panel.test", transport=httpx.MockTransport(held))
    return AuthSession(client)


class TestInFlightFetches:
    """Results of superseded fetches are discarded and concurrent mounts share one fetch."""

    @pytest.mark.asyncio
    async def test_sign_out_during_refresh_stays_signed_out(self, slow_session, held):
        """Test that a late snapshot does not repopulate a signed-out session."""
        guard = PermissionGuard(slow_session, permission=Permission.ORG_ADMIN)
        slow_session.token = "orgadmin-token"
        pending = asyncio.create_task(guard.mount())
        await asyncio.sleep(0)

        # Act
        await slow_session.sign_out()
        held.release.set()
        await pending

        # Assert
        assert not slow_session.authenticated
        assert slow_session.snapshot.permissions == []
        assert guard.state == GuardState.DENIED

    @pytest.mark.asyncio
    async def test_newer_sign_in_wins(self, slow_session, held):
        """Test that an older response cannot overwrite a newer token's snapshot."""
        slow_session.token = "orgadmin-token"
        pending = asyncio.create_task(slow_session.refresh())
        await asyncio.sleep(0)

        await slow_session.sign_in("admin-token")
        held.release.set()
        await pending

        assert slow_session.token == "admin-token"
        assert slow_session.snapshot.is_system_admin
        assert not slow_session.loading

    @pytest.mark.asyncio
    async def test_second_mount_waits_for_fetch_in_flight(self, slow_session, held):
        """Test that a guard mounted mid-fetch stays loading instead of denying."""
        navigated = []
        slow_session.token = "orgadmin-token"
        first = PermissionGuard(
            slow_session, permission=Permission.MANAGE_ORG_USERS, organization_id="org-1", navigate=navigated.append,
        )
        second = PermissionGuard(
            slow_session, permission=Permission.MANAGE_ORG_USERS, organization_id="org-1", navigate=navigated.append,
        )

        first_mount = asyncio.create_task(first.mount())
        await asyncio.sleep(0)
        second_mount = asyncio.create_task(second.mount())
        await asyncio.sleep(0)

        assert second.state == GuardState.LOADING
        assert second.render("content") is None
        assert navigated == []

        held.release.set()
        await asyncio.gather(first_mount, second_mount)

        assert first.state == GuardState.GRANTED
        assert second.state == GuardState.GRANTED
        assert navigated == []
        assert len(held.requests) == 1
