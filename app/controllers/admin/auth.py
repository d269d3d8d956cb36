import secrets

from fastapi import Request
from sqladmin.authentication import AuthenticationBackend


class AdminAuthenticationBackend(AuthenticationBackend):
    """Single operator account kept in the signed session cookie."""

    def __init__(self, secret_key: str, *, username: str, password: str) -> None:
        super().__init__(secret_key)
        self._username = username
        self._password = password

    async def login(self, request: Request) -> bool:
        form = await request.form()
        username = str(form.get("username", ""))
        password = str(form.get("password", ""))

        if not (
            secrets.compare_digest(username, self._username)
            and secrets.compare_digest(password, self._password)
        ):
            return False

        request.session.update({"admin": username})
        return True

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True

    async def authenticate(self, request: Request) -> bool:
        return request.session.get("admin") == self._username
