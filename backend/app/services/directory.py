"""
Directory (Active Directory / LDAP) authentication service.

Verifies credentials with a search-then-bind against the directory and
maps group membership onto application roles.
"""

import re
import asyncio
import logging
from typing import List, Optional, Union

from pydantic import BaseModel
from ldap3 import Server, Connection, SUBTREE
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from backend.app.core.config import settings
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError
from backend.app.models.enums import UserRole

logger = logging.getLogger(__name__)

# userAccountControl bit for a disabled account
ACCOUNTDISABLE = 0x0002

USER_ATTRIBUTES = [
    "sAMAccountName", "displayName", "mail", "department", "title",
    "memberOf", "userAccountControl",
]

_CN_PATTERN = re.compile(r"^\s*cn=([^,]+)", re.IGNORECASE)


class DirectoryError(Exception):
    """Directory login failure carrying a stable error code."""

    MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    ACCOUNT_DISABLED = "ACCOUNT_DISABLED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    CONNECTION_ERROR = "CONNECTION_ERROR"

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class DirectoryConnectionError(DirectoryError):
    def __init__(self, message: str = "Directory server unavailable"):
        super().__init__(DirectoryError.CONNECTION_ERROR, message)


class DirectoryUser(BaseModel):
    username: str
    display_name: str
    email: Optional[str] = None
    department: Optional[str] = None
    title: Optional[str] = None
    groups: List[str] = []


def parse_groups(raw: Union[str, List[str], None]) -> List[str]:
    """Normalize memberOf into a list; string values are ';'-separated."""
    if not raw:
        return []
    if isinstance(raw, str):
        raw = raw.split(";")
    return [group.strip() for group in raw if group and group.strip()]


def _common_name(dn: str) -> str:
    match = _CN_PATTERN.match(dn)
    return (match.group(1) if match else dn).strip().lower()


def is_member_of(groups: List[str], group_dn: str) -> bool:
    """Case-insensitive match on the full DN or on its CN component."""
    if not group_dn:
        return False
    target_dn = group_dn.strip().lower()
    target_cn = _common_name(group_dn)
    for group in groups:
        if group.strip().lower() == target_dn or _common_name(group) == target_cn:
            return True
    return False


def is_user_allowed(groups: List[str]) -> bool:
    """Only members of the dormitory access group may sign in."""
    return is_member_of(groups, settings.ldap_allowed_group_dn)


def derive_role(groups: List[str]) -> UserRole:
    """
    Role from group membership.

    Ad_admin / Ad_it -> admin, DromRpp -> superUser, anything else -> regular.
    """
    if is_member_of(groups, settings.ldap_admin_group_dn) or is_member_of(groups, settings.ldap_it_group_dn):
        return UserRole.ADMIN
    if is_member_of(groups, settings.ldap_allowed_group_dn):
        return UserRole.SUPER_USER
    return UserRole.REGULAR


def _first(values: dict, name: str) -> Optional[str]:
    value = values.get(name)
    if isinstance(value, list):
        value = value[0] if value else None
    return str(value) if value not in (None, "") else None


class DirectoryClient:
    """
    ldap3 client.

    ldap3 is blocking, so each login runs in a worker thread. Connection
    failures trip a circuit breaker; bad passwords do not.
    """

    def __init__(
        self,
        url: str = None,
        base_dn: str = None,
        bind_dn: str = None,
        bind_password: str = None,
        breaker: CircuitBreaker = None
    ):
        self.url = url or settings.ldap_url
        self.base_dn = base_dn or settings.ldap_base_dn
        self.bind_dn = bind_dn if bind_dn is not None else settings.ldap_bind_dn
        self.bind_password = bind_password if bind_password is not None else settings.ldap_bind_password
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=5, reset_timeout=60, expected_exceptions=(DirectoryConnectionError,)
        )

    def _server(self) -> Server:
        return Server(self.url, connect_timeout=settings.ldap_connect_timeout)

    def _lookup(self, server: Server, username: str):
        conn = Connection(
            server,
            user=self.bind_dn or None,
            password=self.bind_password or None,
            receive_timeout=settings.ldap_receive_timeout,
        )
        if not conn.bind():
            raise DirectoryConnectionError("Service account bind failed")
        try:
            search_filter = settings.ldap_search_filter.format(username=escape_filter_chars(username))
            conn.search(self.base_dn, search_filter, search_scope=SUBTREE, attributes=USER_ATTRIBUTES)
            if not conn.entries:
                raise DirectoryError(DirectoryError.USER_NOT_FOUND, "User not found in directory")
            entry = conn.entries[0]
            return entry.entry_dn, entry.entry_attributes_as_dict
        finally:
            conn.unbind()

    def _authenticate_sync(self, username: str, password: str) -> DirectoryUser:
        server = self._server()
        try:
            user_dn, attributes = self._lookup(server, username)

            control = _first(attributes, "userAccountControl")
            if control is not None and int(control) & ACCOUNTDISABLE:
                raise DirectoryError(DirectoryError.ACCOUNT_DISABLED, "Account is disabled")

            user_conn = Connection(
                server, user=user_dn, password=password,
                receive_timeout=settings.ldap_receive_timeout,
            )
            if not user_conn.bind():
                raise DirectoryError(DirectoryError.INVALID_CREDENTIALS, "Invalid username or password")
            user_conn.unbind()
        except LDAPException as exc:
            raise DirectoryConnectionError(str(exc)) from exc

        return DirectoryUser(
            username=_first(attributes, "sAMAccountName") or username,
            display_name=_first(attributes, "displayName") or username,
            email=_first(attributes, "mail"),
            department=_first(attributes, "department"),
            title=_first(attributes, "title"),
            groups=parse_groups(attributes.get("memberOf")),
        )

    async def authenticate(self, username: str, password: str) -> DirectoryUser:
        """
        Verify credentials and return the directory profile.

        Raises:
            DirectoryError: with one of the DirectoryError codes
        """
        if not username or not password:
            raise DirectoryError(DirectoryError.MISSING_CREDENTIALS, "Username and password are required")

        try:
            return await self.breaker.call(asyncio.to_thread, self._authenticate_sync, username, password)
        except CircuitOpenError:
            logger.warning("Directory circuit open, refusing login for %s", username)
            raise DirectoryConnectionError("Directory temporarily unavailable")


directory_client = DirectoryClient()


def get_directory_client() -> DirectoryClient:
    """FastAPI dependency; overridden in tests with a fake directory."""
    return directory_client
