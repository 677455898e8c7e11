from typing import Any, List, Optional

from fastapi import APIRouter, Body
from sqlmodel import Session, select

from config import get_settings
from db import SessionDep
from matching import confirm_match, find_matches, priority_key, reject_match
from models import AidRequest, Match, Resource
from schemas import ConfirmMatchIn, FindMatchesIn
from .auth import AdminDep

router = APIRouter(prefix="/matches", tags=["matches"])


def match_rows(session: Session, matches: List[Match]) -> List[dict]:
    """Matches with the request and resource they pair."""
    rows = []
    for match in matches:
        req = session.get(AidRequest, match.request_id)
        resource = session.get(Resource, match.resource_id)
        row = match.model_dump()
        row["request"] = req
        row["resource"] = resource
        rows.append(row)
    return rows


@router.post("/find")
def run_matching(
    session: SessionDep,
    current: AdminDep,
    params: Optional[FindMatchesIn] = Body(default=None),
) -> Any:
    """
    Propose resources for pending requests that have none yet.
    """
    params = params or FindMatchesIn()
    radius_km = params.radius_km or get_settings().match_radius_km
    created = find_matches(session, radius_km, request_id=params.request_id)
    rows = match_rows(session, created)
    return {"status": "success", "results": len(rows), "data": rows}


@router.get("/pending")
def pending_matches(session: SessionDep, current: AdminDep) -> Any:
    pairs = session.exec(
        select(Match, AidRequest)
        .join(AidRequest, AidRequest.id == Match.request_id)
        .where(Match.status == "pending")
    ).all()
    ordered = [m for m, _ in sorted(pairs, key=lambda p: (priority_key(p[1]), p[0].id))]
    rows = match_rows(session, ordered)
    return {"status": "success", "results": len(rows), "data": rows}


@router.post("/{match_id}/confirm")
def confirm(match_id: int, payload: ConfirmMatchIn, session: SessionDep, current: AdminDep) -> Any:
    """
    Confirm a match and assign the given volunteer to deliver it.
    """
    assignment = confirm_match(session, match_id, payload.volunteer_id)
    return {"status": "success", "data": assignment}


@router.post("/{match_id}/reject")
def reject(match_id: int, session: SessionDep, current: AdminDep) -> Any:
    match = reject_match(session, match_id)
    return {"status": "success", "data": match}
