from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from teamy.db.session import get_db
from teamy.models.content import Test, TestAttempt
from teamy.schemas.content import AttemptOut, AttemptStartIn, AttemptStartOut, TestListOut, TestOut
from teamy.security.dependencies import get_viewer, viewer_for_club
from teamy.services.attempts import attempt_summaries, start_attempt, submit_attempt
from teamy.services.rules import rules_for_test
from teamy.visibility import Denied, ItemKind, TestStatus, ViewerContext, filter_visible, is_visible

router = APIRouter(tags=["tests"])


@router.get("/clubs/{club_id}/tests", response_model=TestListOut)
def list_tests(
    club_id: str,
    viewer: ViewerContext = Depends(get_viewer),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    stmt = select(Test).where(Test.club_id == club_id).options(selectinload(Test.assignments))
    if not viewer.is_admin:
        stmt = stmt.where(Test.status == TestStatus.PUBLISHED)
    tests = list(db.scalars(stmt.order_by(Test.created_at.desc())).all())

    # Admins go through the resolver too: other members' personal tests stay hidden.
    visible = filter_visible(viewer, tests, rules_for_test, kind=ItemKind.TEST)
    if viewer.is_admin:
        return {"tests": visible, "user_attempts": {}}

    summaries = attempt_summaries(db, viewer.membership_id, visible)
    return {
        "tests": visible,
        "user_attempts": {test_id: summary.to_dict() for test_id, summary in summaries.items()},
    }


@router.get("/tests/{test_id}", response_model=TestOut)
def get_test(test_id: str, request: Request, db: Session = Depends(get_db)) -> Test:
    test = _load_test(db, test_id)
    viewer = viewer_for_club(request, db, test.club_id)

    # Unpublished or unassigned tests look the same as missing ones.
    if not viewer.is_admin and test.status != TestStatus.PUBLISHED:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Test not found")
    if not is_visible(viewer, rules_for_test(test), kind=ItemKind.TEST):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Test not found")
    return test


@router.post(
    "/tests/{test_id}/attempts/start",
    response_model=AttemptStartOut,
    status_code=status.HTTP_201_CREATED,
)
def start_test_attempt(
    test_id: str,
    request: Request,
    response: Response,
    payload: AttemptStartIn | None = None,
    db: Session = Depends(get_db),
) -> dict[str, object]:
    test = _load_test(db, test_id)
    viewer = viewer_for_club(request, db, test.club_id)

    password = payload.test_password if payload is not None else None
    result = start_attempt(db, viewer, test, password=password)
    if result.denied is not None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=_denied_body(result.denied))

    if not result.created:
        response.status_code = status.HTTP_200_OK
    return {"attempt": result.attempt, "resumed": not result.created}


@router.post("/tests/{test_id}/attempts/{attempt_id}/submit", response_model=AttemptOut)
def submit_test_attempt(
    test_id: str,
    attempt_id: str,
    request: Request,
    db: Session = Depends(get_db),
) -> TestAttempt:
    attempt = db.scalars(
        select(TestAttempt).where(TestAttempt.id == attempt_id, TestAttempt.test_id == test_id)
    ).first()
    if attempt is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attempt not found")

    test = _load_test(db, test_id)
    viewer = viewer_for_club(request, db, test.club_id)
    if attempt.membership_id != viewer.membership_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your attempt")

    if not submit_attempt(db, attempt):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Attempt already submitted")
    return attempt


def _denied_body(denied: Denied) -> dict[str, object]:
    return {"reason": denied.reason, **denied.detail}


def _load_test(db: Session, test_id: str) -> Test:
    test = db.scalars(select(Test).where(Test.id == test_id).options(selectinload(Test.assignments))).first()
    if test is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Test not found")
    return test
