from datetime import datetime, timezone
from supabase import Client
from panel.modules.auth.schemas import LoginRequest, RegisterRequest, TokenResponse, RegisterResponse
from panel.core.errors import StoreError, UnauthenticatedError, ValidationError
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)

DUPLICATE_ACCOUNT_MARKERS = ("already registered", "already exists")
BAD_CREDENTIAL_MARKERS = ("invalid", "credentials")


def _mentions(error: Exception, markers) -> bool:
    text = str(error).lower()
    return any(marker in text for marker in markers)


class AuthService:
    """Thin pass-through to Supabase Auth. The panel never sees passwords beyond this call."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def register(self, register_data: RegisterRequest) -> RegisterResponse:
        metadata = {"full_name": register_data.full_name} if register_data.full_name else {}
        try:
            auth_response = self.supabase.auth.sign_up({
                "email": register_data.email,
                "password": register_data.password,
                "options": {"data": metadata}
            })
        except Exception as e:
            if _mentions(e, DUPLICATE_ACCOUNT_MARKERS):
                raise ValidationError("User already exists")
            logger.error(f"Registration failed for {register_data.email}: {e}")
            raise StoreError("Registration failed", operation="sign_up") from e

        if not auth_response.user:
            raise ValidationError("Failed to register user")

        # profiles row comes from the handle_new_user trigger
        return RegisterResponse(
            user_id=auth_response.user.id,
            email=auth_response.user.email or register_data.email,
            message="User registered successfully"
        )

    def login(self, login_data: LoginRequest) -> TokenResponse:
        try:
            auth_response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password
            })
        except Exception as e:
            if _mentions(e, BAD_CREDENTIAL_MARKERS):
                raise UnauthenticatedError("Invalid email or password")
            logger.error(f"Login failed for {login_data.email}: {e}")
            raise StoreError("Login failed", operation="sign_in") from e

        if not auth_response.user or not auth_response.session:
            raise UnauthenticatedError("Invalid email or password")

        self._stamp_last_login(auth_response.user.id)
        return TokenResponse(
            access_token=auth_response.session.access_token,
            user_id=auth_response.user.id,
            email=auth_response.user.email or login_data.email
        )

    def _stamp_last_login(self, user_id: str) -> None:
        # informational column; failures are logged only
        try:
            self.supabase.table("profiles")\
                .update({"last_login_at": datetime.now(timezone.utc).isoformat()})\
                .eq("id", user_id)\
                .execute()
        except Exception as e:
            logger.warning(f"Could not update last_login_at for {user_id}: {e}")

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Resolve a bearer token to the caller's identity. Any failure means unauthenticated."""
        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            logger.info(f"Token rejected by Supabase Auth: {e}")
            raise UnauthenticatedError("Invalid or expired token")
        if not user_response or not user_response.user:
            raise UnauthenticatedError("Invalid or expired token")
        user = user_response.user
        return {
            "id": user.id,
            "email": user.email,
            "user_metadata": user.user_metadata or {},
            "created_at": str(user.created_at) if user.created_at else None,
        }

    def logout(self, token: str) -> bool:
        # Access tokens are stateless JWTs and stay valid until they expire
        try:
            self.supabase.auth.sign_out()
            return True
        except Exception as e:
            logger.warning(f"Sign out failed: {e}")
            return False
