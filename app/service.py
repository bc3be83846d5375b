"""
Message operations on behalf of a logged-in user.

Each operation takes the caller explicitly and returns one of the result
variants below instead of raising; main.py maps non-Ok results to HTTP
errors. Storage failures other than a foreign key violation propagate.
"""

import logging
from dataclasses import dataclass
from typing import Any, Union

from sqlalchemy.orm import Session

from app import storage
from app.auth import CurrentUser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ok:
    value: Any


@dataclass(frozen=True)
class Unauthorized:
    message: str
    status: int = 401


@dataclass(frozen=True)
class NotFound:
    message: str
    status: int = 404


@dataclass(frozen=True)
class RecipientNotFound:
    username: str
    status: int = 400

    @property
    def message(self) -> str:
        return f"Cannot send message. User '{self.username}' not found."


Result = Union[Ok, Unauthorized, NotFound, RecipientNotFound]


def _no_such_message(message_id: int) -> NotFound:
    return NotFound(f"No such message: {message_id}")


def get_message(db: Session, user: CurrentUser, message_id: int) -> Result:
    """Return the message if the caller sent or received it."""
    message = storage.get_message(db, message_id)
    if message is None:
        return _no_such_message(message_id)

    if user.username not in (message.from_user.username, message.to_user.username):
        logger.warning(f"User {user.username} denied access to message {message_id}")
        return Unauthorized("Unauthorized. This is not your message.")

    return Ok(message)


def send_message(db: Session, user: CurrentUser, to_username: str, body: str) -> Result:
    """Send a message from the caller to `to_username`."""
    created = storage.create_message(
        db,
        from_username=user.username,
        to_username=to_username,
        body=body,
    )
    if isinstance(created, storage.ForeignKeyViolation):
        return RecipientNotFound(to_username)
    return Ok(created)


def mark_read(db: Session, user: CurrentUser, message_id: int) -> Result:
    """Mark a message read; only its recipient may do so."""
    message = storage.get_message(db, message_id)
    if message is None:
        return _no_such_message(message_id)

    if message.to_user.username != user.username:
        logger.warning(f"User {user.username} denied marking message {message_id} read")
        return Unauthorized("Unauthorized. You are not the recipient of this message.")

    updated = storage.mark_read(db, message_id)
    if updated is None:
        # Deleted between the lookup and the update
        return _no_such_message(message_id)
    return Ok(updated)
