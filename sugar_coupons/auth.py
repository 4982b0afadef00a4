"""
Operator session handed to every service call.

Authentication itself lives upstream; this module only carries who is
operating and with which role.
"""
import logging
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class OperatorSession(BaseModel):
    operator: str = Field(..., description="Operator identity (login email)")
    role: str = Field("operator", description="admin or operator")

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == ADMIN_ROLE


class SessionProvider:
    """Holds the current operator session and notifies listeners when it changes"""

    def __init__(self, session: Optional[OperatorSession] = None):
        self._session = session
        self._listeners: List[Callable[[Optional[OperatorSession]], None]] = []

    def get_current_session(self) -> Optional[OperatorSession]:
        return self._session

    def on_session_change(self, callback: Callable[[Optional[OperatorSession]], None]):
        self._listeners.append(callback)

    def sign_in(self, session: OperatorSession):
        self._session = session
        logger.info(f"[Session] signed in: {session.operator} ({session.role})")
        self._notify()

    def sign_out(self):
        if self._session:
            logger.info(f"[Session] signed out: {self._session.operator}")
        self._session = None
        self._notify()

    def _notify(self):
        for callback in self._listeners:
            callback(self._session)
