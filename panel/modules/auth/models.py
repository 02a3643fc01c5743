# Supabase Auth
# Identity comes from Supabase Auth (auth.users); the panel never stores credentials.
# - auth.sign_up() / auth.sign_in_with_password() issue sessions
# - auth.get_user(jwt) turns a bearer token into a user id
# - auth.sign_out() ends the session
#
# A database trigger (handle_new_user) creates the matching `profiles` row on sign-up:

"""
profiles:
- id: uuid (primary key, references auth.users.id)
- email: text (not null)
- full_name: text (nullable)
- phone: text (nullable)
- timezone: text (nullable)
- preferences: jsonb (default '{}')
- is_active: boolean (default true) - false means the user was deleted by an admin
- last_login_at: timestamptz (nullable)
- created_at: timestamptz (default now())
- updated_at: timestamptz (nullable)
"""
