from __future__ import annotations
from contextlib import contextmanager


@contextmanager
def atomic(session):
    """Commit everything written inside the block, or nothing.

    HTTP aborts raised mid-block roll back too, so a 400 after the first write
    never leaves a partial change behind.
    """
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise

__all__ = ['atomic']
