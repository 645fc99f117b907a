from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from chessclub import db
from chessclub.errors import ClubError, Conflict, Internal


@contextmanager
def atomic(label, conflict_message=None):
    """Run a block as one unit of work against the session.

    Commits when the block finishes and rolls back on any exception, so a
    failed apply/revert never leaves half-updated rows behind. Store errors
    surface as ``Internal`` (or ``Conflict`` for integrity violations when
    ``conflict_message`` is given).
    """
    try:
        yield db.session
        db.session.commit()
    except ClubError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        if conflict_message:
            raise Conflict(conflict_message) from exc
        current_app.logger.error(f"[rollback] {label}: integrity error {exc.orig}")
        raise Internal(f'Could not complete {label}') from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(f"[rollback] {label}: store failure")
        raise Internal(f'Could not complete {label}') from exc
    except BaseException:
        db.session.rollback()
        raise
