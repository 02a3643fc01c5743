# Supabase table: organizations
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

organizations:
- id: uuid (primary key, default: gen_random_uuid())
- name: text (not null)
- slug: text (unique, not null) - ^[a-z0-9-]+$, 3 to 50 characters
- description: text (nullable)
- subscription_plan: text (default 'free') - free | basic | premium | enterprise
- max_users: integer (default 5) - -1 means unlimited
- max_apis: integer (default 2) - -1 means unlimited
- settings: jsonb (default '{}')
- is_active: boolean (default true) - false means soft-deleted
- created_by: uuid (references auth.users.id)
- created_at: timestamptz (default now())
- updated_at: timestamptz (nullable)

Membership is not a separate table: a user belongs to an organization while they
hold an active user_roles row scoped to it.
"""
