# classes/supabase_auth.py

import logging
from typing import Any, Callable, Dict, Optional

import requests
from supabase import AuthError, Client, create_client
from supabase.lib.client_options import ClientOptions

from classes.google_helpers import SUPABASE_ANON_KEY, SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL

logger = logging.getLogger("habit_backend")


class AuthenticationError(Exception):
    pass


class AuthNotConfiguredError(RuntimeError):
    pass


class RevokeFailedError(Exception):
    pass


def display_name(user: Dict[str, Any]) -> str:
    metadata = user.get("user_metadata") or {}
    if metadata.get("full_name"):
        return metadata["full_name"]
    email = user.get("email") or ""
    if email:
        return email.split("@")[0]
    return "User"


def _user_to_dict(user) -> Dict[str, Any]:
    return {
        "id": str(user.id),
        "email": getattr(user, "email", None),
        "user_metadata": dict(getattr(user, "user_metadata", None) or {}),
    }


def _session_to_dict(session) -> Dict[str, Any]:
    if session is None:
        return {"access_token": None, "refresh_token": None, "expires_at": None}
    return {
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
        "expires_at": getattr(session, "expires_at", None),
    }


class SupabaseAuth:
    """
    Thin pass-through to Supabase Auth. Each sign-in style call uses its own
    client so sessions never leak between requests.
    """

    def __init__(
        self,
        url: Optional[str] = SUPABASE_URL,
        anon_key: Optional[str] = SUPABASE_ANON_KEY,
        service_role_key: Optional[str] = SUPABASE_SERVICE_ROLE_KEY,
        client_factory: Optional[Callable[[], Client]] = None,
        http_post: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.url = url
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self._client_factory = client_factory or self._create_client
        self._post = http_post or requests.post

    def _create_client(self) -> Client:
        if not self.url or not self.anon_key:
            raise AuthNotConfiguredError("Supabase is not configured")
        return create_client(
            self.url,
            self.anon_key,
            options=ClientOptions(persist_session=False, auto_refresh_token=False),
        )

    def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> Dict[str, Any]:
        credentials: Dict[str, Any] = {"email": email, "password": password}
        if full_name:
            credentials["options"] = {"data": {"full_name": full_name}}
        try:
            resp = self._client_factory().auth.sign_up(credentials)
        except AuthError as e:
            logger.info(f"Supabase sign_up rejected for {email}: {e}")
            raise AuthenticationError(str(e)) from e
        if resp.user is None:
            raise AuthenticationError("Sign up failed")
        return {"user": _user_to_dict(resp.user), **_session_to_dict(resp.session)}

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        try:
            resp = self._client_factory().auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as e:
            logger.info(f"Supabase sign_in rejected for {email}: {e}")
            raise AuthenticationError("Invalid login credentials") from e
        return {"user": _user_to_dict(resp.user), **_session_to_dict(resp.session)}

    def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"auth_code": code}
        if code_verifier:
            params["code_verifier"] = code_verifier
        try:
            resp = self._client_factory().auth.exchange_code_for_session(params)
        except AuthError as e:
            logger.error(f"Error exchanging code for session: {e}")
            raise AuthenticationError("Authentication failed") from e
        if resp.user is None:
            raise AuthenticationError("Authentication failed")
        return {"user": _user_to_dict(resp.user), **_session_to_dict(resp.session)}

    def get_user(self, access_token: str) -> Dict[str, Any]:
        if not access_token:
            raise AuthenticationError("User not authenticated")
        try:
            resp = self._client_factory().auth.get_user(access_token)
        except AuthError as e:
            raise AuthenticationError("Invalid authentication credentials") from e
        if resp is None or resp.user is None:
            raise AuthenticationError("Invalid authentication credentials")
        return _user_to_dict(resp.user)

    def sign_out(self, access_token: str) -> None:
        """
        Revokes the refresh tokens behind `access_token` via the Auth logout endpoint.
        """
        if not access_token:
            raise ValueError("missing access_token")
        if not self.url or not self.service_role_key:
            raise AuthNotConfiguredError("server not configured")

        try:
            resp = self._post(
                f"{self.url.rstrip('/')}/auth/v1/logout",
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {access_token}",
                    "apikey": self.service_role_key,
                },
                timeout=10,
            )
        except requests.RequestException as e:
            logger.error(f"Failed to revoke token: {e}")
            raise RevokeFailedError("failed to revoke token") from e

        if not resp.ok:
            logger.error(f"Failed to revoke token: {resp.status_code} {resp.text}")
            raise RevokeFailedError("failed to revoke token")
