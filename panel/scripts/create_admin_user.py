"""
Create Admin User Script
Grants the global system_admin role to an account, creating the account first
when a password is given and no profile exists for the email.
Run with: python -m panel.scripts.create_admin_user --email admin@example.com [--password ...]

Requires SUPABASE_SERVICE_ROLE_KEY.
"""

import argparse
import sys
from typing import Optional
from panel.config.permissions_config import RoleType
from panel.config.settings import settings
from panel.core.assignment_store import RoleAssignmentStore
from panel.database.supabase_client import get_service_supabase
from supabase import Client
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class AdminSetupError(Exception):
    pass


def find_user_id(supabase: Client, email: str) -> Optional[str]:
    result = supabase.table("profiles")\
        .select("id")\
        .eq("email", email)\
        .limit(1)\
        .execute()
    return result.data[0]["id"] if result.data else None


def create_user(supabase: Client, email: str, password: str, full_name: str) -> str:
    response = supabase.auth.admin.create_user({
        "email": email,
        "password": password,
        "email_confirm": True,
        "user_metadata": {"full_name": full_name}
    })
    if not response or not response.user:
        raise AdminSetupError(f"Supabase Auth did not return a user for {email}")
    user_id = response.user.id
    # The sign-up trigger normally creates the profile; upsert covers projects without it
    supabase.table("profiles").upsert({
        "id": user_id,
        "email": email,
        "full_name": full_name,
        "is_active": True
    }).execute()
    return user_id


def grant_system_admin(
    supabase: Client,
    email: str,
    password: Optional[str] = None,
    full_name: str = "System Administrator"
) -> str:
    """Returns the user id. Granting is skipped when a live system_admin assignment exists."""
    user_id = find_user_id(supabase, email)
    if user_id is None:
        if not password:
            raise AdminSetupError(f"No profile for {email}; pass --password to create the account")
        user_id = create_user(supabase, email, password, full_name)
        logger.info(f"Created user {email} ({user_id})")

    store = RoleAssignmentStore(supabase)
    if user_id in store.users_holding_role([user_id], RoleType.SYSTEM_ADMIN):
        logger.info(f"{email} is already a system administrator")
        return user_id

    store.insert_assignments([{
        "user_id": user_id,
        "organization_id": None,
        "role_type": RoleType.SYSTEM_ADMIN.value,
        "permissions": [],
        "is_active": True
    }])
    logger.info(f"Granted system_admin to {email} ({user_id})")
    return user_id


def main(argv=None):
    parser = argparse.ArgumentParser(description="Grant the system_admin role to an account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", help="create the account with this password if it does not exist")
    parser.add_argument("--full-name", default="System Administrator")
    args = parser.parse_args(argv)

    if not settings.supabase_service_role_key:
        logger.error("SUPABASE_SERVICE_ROLE_KEY must be set")
        sys.exit(1)

    try:
        grant_system_admin(get_service_supabase(), args.email, args.password, args.full_name)
    except Exception as e:
        logger.error(f"Error creating admin user: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
