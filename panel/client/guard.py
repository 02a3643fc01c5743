"""
Client-side permission guard.

State machine: LOADING until the session has a snapshot, then GRANTED or
DENIED. The guard re-evaluates when its requirements change (update) or when
the session changes (sign in, sign out, refresh). It fails closed: a session
whose fetch failed holds the empty snapshot, which grants nothing.

The guard only decides what to show. The server enforces every privileged
operation on its own.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Tuple
import logging

from panel.client.session import AuthSession
from panel.client.snapshot import PermissionSnapshot

logger = logging.getLogger(__name__)


class GuardState(str, Enum):
    LOADING = "loading"
    GRANTED = "granted"
    DENIED = "denied"


def _values(items: Optional[Iterable]) -> Tuple[str, ...]:
    return tuple(getattr(i, "value", i) for i in (items or ()))


@dataclass(frozen=True)
class GuardRequirements:
    permission: Optional[str] = None
    role: Optional[str] = None
    organization_id: Optional[str] = None
    permissions: Tuple[str, ...] = ()
    roles: Tuple[str, ...] = ()
    require_all: bool = False

    @classmethod
    def build(cls, permission=None, role=None, organization_id=None, permissions=None, roles=None, require_all=False):
        return cls(
            permission=getattr(permission, "value", permission),
            role=getattr(role, "value", role),
            organization_id=organization_id,
            permissions=_values(permissions),
            roles=_values(roles),
            require_all=require_all,
        )

    def allows(self, snapshot: PermissionSnapshot) -> bool:
        """Every stated requirement must hold; no requirement at all means allowed"""
        if snapshot.is_system_admin:
            return True
        org = self.organization_id
        if self.permission and not snapshot.has_permission(self.permission, org):
            return False
        if self.role and not snapshot.has_role(self.role, org):
            return False
        if self.permissions:
            check = snapshot.has_all_permissions if self.require_all else snapshot.has_any_permission
            if not check(self.permissions, org):
                return False
        if self.roles:
            check = snapshot.has_all_roles if self.require_all else snapshot.has_any_role
            if not check(self.roles, org):
                return False
        return True


class PermissionGuard:
    def __init__(
        self,
        session: AuthSession,
        permission=None,
        role=None,
        organization_id: Optional[str] = None,
        permissions=None,
        roles=None,
        require_all: bool = False,
        fallback: Any = None,
        redirect_to: Optional[str] = "/dashboard",
        navigate: Optional[Callable[[str], None]] = None,
    ):
        self.session = session
        self.requirements = GuardRequirements.build(
            permission, role, organization_id, permissions, roles, require_all
        )
        self.fallback = fallback
        self.redirect_to = redirect_to
        self.navigate = navigate
        self.state = GuardState.LOADING
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def mounted(self) -> bool:
        return self._unsubscribe is not None

    async def mount(self) -> GuardState:
        """Attach to the session, fetch the snapshot if nobody has yet, and evaluate"""
        if not self.mounted:
            self._unsubscribe = self.session.subscribe(self._on_session_change)
        await self.session.ensure_loaded()
        if self.session.loading:
            # a newer fetch started meanwhile; its completion notifies us
            self.state = GuardState.LOADING
            return self.state
        self._evaluate()
        return self.state

    def unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def update(self, **requirements) -> bool:
        """Change requirement parameters; re-evaluates only when something actually changed"""
        current = self.requirements
        normalized = {}
        for key, value in requirements.items():
            if key in ("permissions", "roles"):
                value = _values(value)
            elif key in ("permission", "role"):
                value = getattr(value, "value", value)
            normalized[key] = value
        updated = replace(current, **normalized)
        if updated == current:
            return False
        self.requirements = updated
        if self.mounted and self.session.loaded and not self.session.loading:
            self._evaluate()
        return True

    def render(self, content: Any) -> Any:
        if self.state == GuardState.GRANTED:
            return content
        if self.state == GuardState.DENIED:
            return self.fallback
        return None

    def _on_session_change(self, session: AuthSession) -> None:
        if session.loading:
            self.state = GuardState.LOADING
            return
        self._evaluate()

    def _evaluate(self) -> None:
        previous = self.state
        allowed = self.requirements.allows(self.session.snapshot)
        self.state = GuardState.GRANTED if allowed else GuardState.DENIED
        if self.state == GuardState.DENIED and previous != GuardState.DENIED:
            logger.debug(f"Guard denied: {self.requirements}")
            if self.redirect_to and self.navigate is not None:
                self.navigate(self.redirect_to)
