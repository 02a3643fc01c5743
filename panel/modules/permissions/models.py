# Supabase tables: user_roles (read), organizations (read), permissions (seeded)
# Nothing in this module writes; snapshots are derived per request and never stored.

"""
permissions (definition table, seeded by panel/scripts/seed_permissions.py):
- id: uuid (primary key)
- name: text (unique, not null) - e.g. "org:users:manage"
- category: text - system | organization | user
- resource: text - e.g. "users"
- action: text - e.g. "manage"
- description: text (nullable)
- created_at: timestamptz (default now())

The permissions table is informational. Resolution always uses the catalog in
panel/config/permissions_config.py, so a stale table cannot widen access.
"""
