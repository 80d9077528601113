"""
Session Store

Identity of the acting user. Login and logout replace the whole session in
one dispatch, so no observer can see a token without its role.
"""

import logging
from typing import Optional

from tableside.schemas import Role, Session
from tableside.store.state import (
    CustomerLoggedIn,
    EngineUsageError,
    LoggedOut,
    StaffLoggedIn,
    TableSelected,
)
from tableside.store.store import Store

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, store: Store):
        self._store = store

    @property
    def session(self) -> Session:
        return self._store.state.session

    @property
    def token(self) -> Optional[str]:
        return self.session.token

    @property
    def current_table(self) -> Optional[str]:
        return self._store.state.current_table

    def login_customer(self, phone: str, email: str, token: str) -> None:
        self._store.dispatch(CustomerLoggedIn(phone=phone, email=email, token=token))
        logger.info(f"Customer {phone} logged in")

    def login_staff(self, role: Role, token: str) -> None:
        self._store.dispatch(StaffLoggedIn(role=Role(role), token=token))
        logger.info(f"Staff logged in as {Role(role).value}")

    def logout(self) -> None:
        """Back to guest; the cart is kept."""
        self._store.dispatch(LoggedOut())
        logger.info("Logged out")

    def set_current_table(self, table_no: Optional[str]) -> None:
        self._store.dispatch(TableSelected(table_no=table_no or None))

    def require_role(self, *roles: Role) -> Session:
        """
        Return the session if its role is one of ``roles``.

        Raises:
            EngineUsageError: The operation is never valid for this role
        """
        session = self.session
        if session.role not in roles:
            allowed = ", ".join(r.value for r in roles)
            raise EngineUsageError(f"Operation requires role {allowed}, not {session.role.value}")
        return session
