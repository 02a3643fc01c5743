# Supabase tables: profiles, user_roles, user_invitations, audit_logs
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py and panel.core.assignment_store
# Authentication is handled by Supabase Auth (auth.users table)

"""
Expected Supabase table structure:

profiles:
- id: uuid (primary key, references auth.users.id)
- email: text (not null) - synced from auth.users
- full_name: text (nullable)
- phone: text (nullable)
- timezone: text (nullable)
- preferences: jsonb (default '{}')
- is_active: boolean (default true) - admin "delete" sets this to false
- last_login_at: timestamptz (nullable)
- created_at: timestamptz (default now())
- updated_at: timestamptz (nullable)

user_invitations:
- id: uuid (primary key)
- email: text (not null)
- organization_id: uuid (references organizations.id)
- role_type: text - system_admin | org_admin | user
- invited_by: uuid (references profiles.id)
- token: text (unique) - sent in the /invite/<token> link
- status: text - pending | accepted | expired | cancelled
- expires_at: timestamptz
- created_at: timestamptz (default now())
- updated_at: timestamptz (nullable)

user_roles: see panel/core/assignment_store.py
audit_logs: see panel/core/audit.py

Users are never hard-deleted from the panel. Deleting a user deactivates the
profile and soft-invalidates every role assignment in the same request.
"""
