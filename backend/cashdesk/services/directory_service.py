"""Directory lookups for cashiers and supervisors."""

import logging

from sqlalchemy.orm import Session

from cashdesk.core.exceptions import NotFoundError
from cashdesk.models.user import User

logger = logging.getLogger(__name__)


class DirectoryService:
    """Read-only view of the user directory."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("Cashier not found")
        return user
