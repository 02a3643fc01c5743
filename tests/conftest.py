"""
Test Configuration and Fixtures
================================

Central configuration for pytest with all shared fixtures.

Features:
- In-memory stand-in for the Supabase query builder (tables, rpc, auth)
- TestClient with both Supabase dependencies overridden
- Seeded organizations, profiles and role assignments
- Bearer-token headers per seeded user
"""

import copy
import os
import re
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

# Set testing environment before importing app modules
os.environ["ENVIRONMENT"] = "testing"
os.environ["SUPABASE_URL"] = "http://supabase.test"
os.environ["SUPABASE_KEY"] = "anon-test-key"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "service-test-key"
os.environ["RATE_LIMIT_ENABLED"] = "false"  # Disable rate limiting in tests

from panel.database.supabase_client import get_supabase, get_service_supabase
from panel.main import app as main_app


# =====================================
# Fake Supabase client
# =====================================

def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _compare(row_value: Any, op: str, raw: str) -> bool:
    if op == "is":
        return row_value is None if raw == "null" else str(row_value).lower() == raw
    if op == "eq":
        return str(row_value) == raw
    if op in ("gt", "gte", "lt", "lte"):
        if row_value is None:
            return False
        left, right = _parse_ts(row_value), _parse_ts(raw)
        return {
            "gt": left > right,
            "gte": left >= right,
            "lt": left < right,
            "lte": left <= right,
        }[op]
    if op == "ilike":
        if row_value is None:
            return False
        pattern = ".*".join(re.escape(part) for part in raw.split("%"))
        return re.fullmatch(pattern, str(row_value), flags=re.IGNORECASE) is not None
    raise ValueError(f"Unsupported operator in fake or_(): {op}")


class FakeQuery:
    """Chainable query mimicking the postgrest builder methods the panel uses."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.operation = "select"
        self.payload: Any = None
        self.count_mode: Optional[str] = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.order_by: Optional[tuple] = None
        self.limit_to: Optional[int] = None
        self.skip = 0

    # operations
    def select(self, columns: str = "*", count: Optional[str] = None):
        self.operation = "select"
        self.count_mode = count
        return self

    def insert(self, rows):
        self.operation = "insert"
        self.payload = rows
        return self

    def update(self, values: Dict[str, Any]):
        self.operation = "update"
        self.payload = values
        return self

    def upsert(self, row: Dict[str, Any]):
        self.operation = "upsert"
        self.payload = row
        return self

    # filters
    def eq(self, column: str, value: Any):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def in_(self, column: str, values):
        values = list(values)
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def or_(self, expression: str):
        clauses = []
        for clause in expression.split(","):
            column, op, raw = clause.split(".", 2)
            clauses.append((column, op, raw))
        self.filters.append(lambda r: any(_compare(r.get(c), op, raw) for c, op, raw in clauses))
        return self

    # modifiers
    def order(self, column: str, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, n: int):
        self.limit_to = n
        return self

    def offset(self, n: int):
        self.skip = n
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        return [row for row in self.db.tables.setdefault(self.table, []) if all(f(row) for f in self.filters)]

    def execute(self):
        self.db.queries.append((self.table, self.operation))
        if self.table in self.db.fail_tables:
            raise Exception(f"connection refused while querying {self.table}")

        if self.operation == "select":
            rows = [copy.deepcopy(r) for r in self._matching()]
            if self.order_by:
                column, desc = self.order_by
                rows.sort(key=lambda r: (r.get(column) is None, str(r.get(column))), reverse=desc)
            total = len(rows)
            rows = rows[self.skip:]
            if self.limit_to is not None:
                rows = rows[:self.limit_to]
            return SimpleNamespace(data=rows, count=total if self.count_mode else None)

        if self.operation == "insert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for row in rows:
                stored = {**self.db.defaults(self.table), **copy.deepcopy(row)}
                stored.setdefault("id", str(uuid.uuid4()))
                self.db.tables.setdefault(self.table, []).append(stored)
                inserted.append(copy.deepcopy(stored))
            return SimpleNamespace(data=inserted, count=None)

        if self.operation == "update":
            updated = []
            for row in self._matching():
                row.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(row))
            return SimpleNamespace(data=updated, count=None)

        if self.operation == "upsert":
            rows = self.db.tables.setdefault(self.table, [])
            for row in rows:
                if row.get("id") == self.payload.get("id"):
                    row.update(copy.deepcopy(self.payload))
                    return SimpleNamespace(data=[copy.deepcopy(row)], count=None)
            rows.append(copy.deepcopy(self.payload))
            return SimpleNamespace(data=[copy.deepcopy(self.payload)], count=None)

        raise ValueError(self.operation)


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: Dict[str, Any]):
        self.db = db
        self.name = name
        self.params = params

    def execute(self):
        if "rpc" in self.db.fail_tables:
            raise Exception("rpc unavailable")
        self.db.rpc_calls.append((self.name, copy.deepcopy(self.params)))
        return SimpleNamespace(data=None, count=None)


class FakeAuthAdmin:
    def __init__(self, auth: "FakeAuth"):
        self.auth = auth

    def create_user(self, attributes: Dict[str, Any]):
        return self.auth.sign_up({"email": attributes["email"], "password": attributes["password"]})


class FakeAuth:
    def __init__(self):
        self.tokens: Dict[str, str] = {}  # token -> user id
        self.accounts: Dict[str, Dict[str, str]] = {}  # email -> {id, password}
        self.admin = FakeAuthAdmin(self)

    def _user(self, user_id: str, email: str):
        return SimpleNamespace(id=user_id, email=email, user_metadata={}, created_at=None)

    def _email_of(self, user_id: str) -> str:
        for email, account in self.accounts.items():
            if account["id"] == user_id:
                return email
        return f"{user_id}@example.com"

    def get_user(self, jwt: str):
        if jwt not in self.tokens:
            raise Exception("invalid JWT: unable to parse or verify signature")
        user_id = self.tokens[jwt]
        return SimpleNamespace(user=self._user(user_id, self._email_of(user_id)))

    def sign_up(self, credentials: Dict[str, Any]):
        email = credentials["email"]
        if email in self.accounts:
            raise Exception("User already registered")
        user_id = f"user-{uuid.uuid4().hex[:8]}"
        self.accounts[email] = {"id": user_id, "password": credentials["password"]}
        return SimpleNamespace(user=self._user(user_id, email), session=None)

    def sign_in_with_password(self, credentials: Dict[str, Any]):
        account = self.accounts.get(credentials["email"])
        if account is None or account["password"] != credentials["password"]:
            raise Exception("Invalid login credentials")
        token = f"token-{uuid.uuid4().hex}"
        self.tokens[token] = account["id"]
        return SimpleNamespace(
            user=self._user(account["id"], credentials["email"]),
            session=SimpleNamespace(access_token=token),
        )

    def sign_out(self):
        return None


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.rpc_calls: List[tuple] = []
        self.queries: List[tuple] = []
        self.fail_tables = set()
        self.auth = FakeAuth()

    def defaults(self, table: str) -> Dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        if table == "user_roles":
            return {"permissions": [], "is_active": True, "expires_at": None, "assigned_at": now}
        if table in ("organizations", "profiles"):
            return {"is_active": True, "created_at": now}
        return {}

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)

    # helpers for tests
    def rows(self, table: str, **match) -> List[Dict[str, Any]]:
        return [r for r in self.tables.get(table, []) if all(r.get(k) == v for k, v in match.items())]

    def audit_actions(self) -> List[str]:
        return [params["p_action"] for name, params in self.rpc_calls if name == "log_audit_event"]


# =====================================
# Seed data
# =====================================

ORG_1 = "org-1"
ORG_2 = "org-2"

SEED_USERS = {
    "admin": ("user-admin", "admin@example.com"),
    "orgadmin": ("user-orgadmin", "orgadmin@example.com"),
    "member": ("user-member", "member@example.com"),
    "member2": ("user-member2", "member2@example.com"),
    "outsider": ("user-outsider", "outsider@example.com"),
    "expired": ("user-expired", "expired@example.com"),
    "inactive": ("user-inactive", "inactive@example.com"),
}


def _assignment(user_id: str, role_type: str, organization_id: Optional[str], **extra) -> Dict[str, Any]:
    row = {
        "id": f"role-{user_id}-{role_type}-{organization_id or 'global'}",
        "user_id": user_id,
        "role_type": role_type,
        "organization_id": organization_id,
        "permissions": [],
        "is_active": True,
        "expires_at": None,
        "assigned_at": "2024-01-01T00:00:00+00:00",
    }
    row.update(extra)
    return row


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    """Seeded fake: two organizations and one user per role situation."""
    db = FakeSupabase()
    yesterday = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()

    db.tables["organizations"] = [
        {"id": ORG_1, "name": "Acme", "slug": "acme", "description": None, "subscription_plan": "free",
         "max_users": 5, "max_apis": 2, "settings": {}, "is_active": True, "created_by": "user-admin",
         "created_at": "2024-01-01T00:00:00+00:00", "updated_at": None},
        {"id": ORG_2, "name": "Globex", "slug": "globex", "description": None, "subscription_plan": "basic",
         "max_users": 25, "max_apis": 10, "settings": {}, "is_active": True, "created_by": "user-admin",
         "created_at": "2024-02-01T00:00:00+00:00", "updated_at": None},
    ]
    db.tables["profiles"] = [
        {"id": user_id, "email": email, "full_name": name.title(), "phone": None, "timezone": None,
         "is_active": True, "last_login_at": None, "created_at": "2024-01-01T00:00:00+00:00", "updated_at": None}
        for name, (user_id, email) in SEED_USERS.items()
    ]
    db.tables["user_roles"] = [
        _assignment("user-admin", "system_admin", None),
        _assignment("user-orgadmin", "org_admin", ORG_1),
        _assignment("user-member", "user", ORG_1),
        _assignment("user-member2", "user", ORG_2),
        _assignment("user-expired", "org_admin", ORG_1, expires_at=yesterday),
        _assignment("user-inactive", "org_admin", ORG_1, is_active=False),
    ]
    db.tables["audit_logs"] = []
    for name, (user_id, email) in SEED_USERS.items():
        db.auth.tokens[f"token-{name}"] = user_id
        db.auth.accounts[email] = {"id": user_id, "password": "Password123!"}
    return db


@pytest.fixture(scope="function")
def client(fake_supabase: FakeSupabase) -> Generator[TestClient, None, None]:
    """
    Create a TestClient with both Supabase dependencies overridden.

    Yields:
        TestClient instance
    """
    main_app.dependency_overrides[get_supabase] = lambda: fake_supabase
    main_app.dependency_overrides[get_service_supabase] = lambda: fake_supabase

    with TestClient(main_app) as test_client:
        yield test_client

    main_app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[str], Dict[str, str]]:
    """Bearer header for a seeded user name, e.g. auth_headers("admin")."""
    def build(name: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer token-{name}"}
    return build
