import json
import logging
from dataclasses import replace
from typing import Optional

from parseclient.core.exceptions import ErrorCode, ParseError, ValidationError
from parseclient.core.types import HTTPMethod
from parseclient.client.client import ParseClient, get_client
from parseclient.client.objects import ParseObject
from parseclient.client.transport import RequestOptions

logger = logging.getLogger(__name__)

CURRENT_USER_KEY = "currentUser"


class ParseUser(ParseObject):
    """
    A user account, stored in the ``_User`` class.

    The signed-in user is cached on the client and, when the client has a
    storage, persisted so it survives restarts.

    Usage:
        user = ParseUser()
        user.username = "alice"
        user.password = "s3cret"
        await user.sign_up()

        user = await ParseUser.login("alice", "s3cret")
        current = await ParseUser.current_user()
    """

    parse_class_name = "_User"

    def __init__(self, client: Optional[ParseClient] = None):
        super().__init__("_User", client=client)

    @property
    def username(self) -> Optional[str]:
        return self.get("username")

    @username.setter
    def username(self, value: Optional[str]) -> None:
        self.set("username", value)

    @property
    def email(self) -> Optional[str]:
        return self.get("email")

    @email.setter
    def email(self, value: Optional[str]) -> None:
        self.set("email", value)

    # write only
    password = property(None, lambda self, value: self.set("password", value))

    @property
    def session_token(self) -> Optional[str]:
        return self.get("sessionToken")

    @property
    def email_verified(self) -> Optional[bool]:
        return self.get("emailVerified")

    def _request_options(self, options: Optional[RequestOptions]) -> RequestOptions:
        options = options or RequestOptions()
        if options.session_token is None and self.session_token:
            options = replace(options, session_token=self.session_token)
        return options

    async def sign_up(self, options: Optional[RequestOptions] = None) -> "ParseUser":
        """
        Create the account and sign in as it.

        Raises:
            ValidationError: username or password missing.
        """
        if not self.username:
            raise ValidationError("Username is required", code=ErrorCode.USERNAME_MISSING)
        if not self._pending.get("password"):
            raise ValidationError("Password is required", code=ErrorCode.PASSWORD_MISSING)

        response = await self.client.request(
            HTTPMethod.POST, "users", data=self._build_save_body(), options=options
        )
        self._handle_save_response(response.data)
        self._server_data.pop("password", None)
        await self._become_current()
        return self

    async def save(self, options: Optional[RequestOptions] = None) -> "ParseUser":
        await super().save(options)
        self._server_data.pop("password", None)
        if self._is_current():
            await self._persist(self.client, self)
        return self

    def _is_current(self) -> bool:
        current = get_client(self._client).current_user
        return current is self or (current is not None and current == self)

    async def _become_current(self) -> None:
        client = self.client
        client.current_user = self
        await self._persist(client, self)

    @staticmethod
    async def _persist(client: ParseClient, user: "ParseUser") -> None:
        if client.storage is None:
            return
        blob = json.dumps(user.to_wire_format(full=True))
        await client.storage.set_string(CURRENT_USER_KEY, blob)

    @classmethod
    def _from_response(cls, data, client: Optional[ParseClient]) -> "ParseUser":
        return ParseObject.from_json("_User", data, client=client)

    @classmethod
    async def login(
        cls,
        username: str,
        password: str,
        options: Optional[RequestOptions] = None,
        client: Optional[ParseClient] = None,
    ) -> "ParseUser":
        active = get_client(client)
        response = await active.request(
            HTTPMethod.POST,
            "login",
            data={"username": username, "password": password},
            options=options,
        )
        user = cls._from_response(response.data, client)
        await user._become_current()
        return user

    @classmethod
    async def become(
        cls, session_token: str, client: Optional[ParseClient] = None
    ) -> "ParseUser":
        """Sign in with an existing session token."""
        active = get_client(client)
        response = await active.request(
            HTTPMethod.GET, "users/me", options=RequestOptions(session_token=session_token)
        )
        data = dict(response.data)
        data.setdefault("sessionToken", session_token)
        user = cls._from_response(data, client)
        await user._become_current()
        return user

    @classmethod
    async def logout(cls, client: Optional[ParseClient] = None) -> None:
        active = get_client(client)
        active.current_user = None
        if active.storage is not None:
            await active.storage.remove(CURRENT_USER_KEY)

    @classmethod
    async def current_user(cls, client: Optional[ParseClient] = None) -> Optional["ParseUser"]:
        active = get_client(client)
        if active.current_user is not None:
            return active.current_user
        if active.storage is None:
            return None

        blob = await active.storage.get_string(CURRENT_USER_KEY)
        if not blob:
            return None
        try:
            data = json.loads(blob)
            if not isinstance(data, dict):
                raise ValueError("stored user is not an object")
            user = cls._from_response(data, client)
        except (ValueError, TypeError, KeyError, ParseError) as e:
            logger.warning("Discarding unreadable stored user session: %s", e)
            await active.storage.remove(CURRENT_USER_KEY)
            return None
        active.current_user = user
        return user

    @classmethod
    async def request_password_reset(
        cls, email: str, client: Optional[ParseClient] = None
    ) -> None:
        await get_client(client).request(
            HTTPMethod.POST, "requestPasswordReset", data={"email": email}
        )
