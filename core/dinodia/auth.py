"""
Dinodia Auth Endpoints

Login, password change and remote logout against the Dinodia auth functions.
"""

import asyncio
import logging

import requests

from .exceptions import AuthError, InvalidInputError
from .models import AuthUser, Role

logger = logging.getLogger(__name__)

LOGIN_FAILED = "We could not log you in right now. Please try again."
BAD_CREDENTIALS = "We could not log you in. Check your username and password and try again."
PASSWORD_CHANGE_FAILED = "We could not update that password. Please check your details and try again."


class AuthService:
    def __init__(
        self,
        auth_base_url: str,
        anon_key: str,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ):
        self.base_url = auth_base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": anon_key,
                "Authorization": f"Bearer {anon_key}",
                "Content-Type": "application/json",
            }
        )
        self.timeout = timeout

    def _post(self, path: str, payload: dict) -> requests.Response:
        return self.session.post(f"{self.base_url}/{path}", json=payload, timeout=self.timeout)

    def _login(self, username: str, password: str) -> AuthUser:
        try:
            response = self._post("auth-login", {"username": username, "password": password})
            body = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise AuthError(LOGIN_FAILED) from e

        if not isinstance(body, dict):
            raise AuthError(LOGIN_FAILED)
        error = body.get("error") or ""
        if response.status_code != 200 or not body.get("ok") or not body.get("user"):
            if response.status_code == 401 or "invalid" in error.lower():
                raise AuthError(BAD_CREDENTIALS)
            raise AuthError(error or LOGIN_FAILED)
        return AuthUser.from_json(body["user"])

    async def login(self, username: str, password: str) -> AuthUser:
        """Authenticate and return the user.

        Raises:
            InvalidInputError: If username or password is empty (no request made)
            AuthError: If the credentials are rejected or the endpoint fails
        """
        username = (username or "").strip()
        if not username or not password:
            raise InvalidInputError("Enter both username and password to sign in.")
        user = await asyncio.to_thread(self._login, username, password)
        logger.info(f"User {user.id} logged in as {user.role.value}")
        return user

    def _change_password(self, role: Role, current: str, new: str, confirm: str) -> None:
        path = "auth/admin/change-password" if role == Role.ADMIN else "auth/tenant/change-password"
        payload = {"currentPassword": current, "newPassword": new, "confirmNewPassword": confirm}
        try:
            response = self._post(path, payload)
        except requests.exceptions.RequestException as e:
            raise AuthError(PASSWORD_CHANGE_FAILED) from e
        if not 200 <= response.status_code < 300:
            raise AuthError(PASSWORD_CHANGE_FAILED)

    async def change_password(self, role: Role, current: str, new: str, confirm: str) -> None:
        await asyncio.to_thread(self._change_password, Role(role), current, new, confirm)

    def _logout(self) -> None:
        try:
            self._post("auth/logout", {})
        except requests.exceptions.RequestException as e:
            logger.debug(f"Remote logout failed: {e}")

    async def logout_remote(self) -> None:
        """Fire-and-forget logout notification. Never raises for transport errors."""
        await asyncio.to_thread(self._logout)
