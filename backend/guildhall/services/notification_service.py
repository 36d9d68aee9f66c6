from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Notice, User
from ..validation import ValidationError


KIND_GENERAL = "GENERAL"
KIND_ROTATION = "ROTATION"
KIND_DISMISSAL = "DISMISSAL"
VALID_NOTICE_KINDS = {KIND_GENERAL, KIND_ROTATION, KIND_DISMISSAL}


def post_notice(user_id: int, *, title: str, body: str, kind: str = KIND_GENERAL, commit: bool = True) -> Notice:
    normalized_kind = (kind or "").upper().strip()
    if normalized_kind not in VALID_NOTICE_KINDS:
        raise ValidationError(f"kind must be one of {', '.join(sorted(VALID_NOTICE_KINDS))}")

    notice = Notice(user_id=user_id, title=title, body=body, kind=normalized_kind)
    db.session.add(notice)
    if commit:
        db.session.commit()
    return notice


def list_notices(user_id: int, unread_only: bool = False) -> list[Notice]:
    q = db.session.query(Notice).filter_by(user_id=user_id)
    if unread_only:
        q = q.filter(Notice.is_read.is_(False))
    return q.order_by(Notice.created_at.desc(), Notice.id.desc()).all()


def notify_role_swap(promoted: User, demoted: User) -> None:
    """
    Tell both people about a completed swap.

    Runs after the swap has committed. A failure here is logged and the notices
    are dropped; the swap stands.
    """
    promoted_id, demoted_id = promoted.id, demoted.id
    try:
        post_notice(
            promoted_id,
            title="Promoted to member",
            body=f"Congratulations {promoted.username}, you now hold a formal member seat.",
            kind=KIND_ROTATION,
            commit=False,
        )
        post_notice(
            demoted_id,
            title="Moved to intern",
            body=f"{demoted.username}, your formal seat has rotated to another member; you are now an intern.",
            kind=KIND_ROTATION,
            commit=False,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to write rotation notices for users %s and %s", promoted_id, demoted_id
        )


def notify_dismissal_pending(interns: list[User], months: list[str]) -> None:
    """Warn interns just marked pending dismissal. Failures are logged only."""
    user_ids = [u.id for u in interns]
    if not user_ids:
        return
    try:
        for intern in interns:
            post_notice(
                intern.id,
                title="Pending dismissal",
                body=(
                    f"{intern.username}, your contribution points stayed below the required level "
                    f"for {', '.join(sorted(months))}. Your internship is under review."
                ),
                kind=KIND_DISMISSAL,
                commit=False,
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to write dismissal notices for users %s", user_ids)
