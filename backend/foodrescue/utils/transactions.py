from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session


@contextmanager
def smart_transaction(session: Session) -> Iterator[Session]:
    """
    Run a block of DB work as one unit on the given Session.

    Starts a regular transaction, or a SAVEPOINT when the session is already
    inside one. Any exception raised in the block rolls the unit back and
    propagates.

    Usage:
        with smart_transaction(db):
            ... DB work ...
    """
    if session.in_transaction():
        cm = session.begin_nested()
    else:
        cm = session.begin()
    with cm:
        yield session
