import logging
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException, Query, Response
from sqlmodel import Session, col, or_, select

from db import SessionDep
from geo import within_radius
from matching import release_assignment
from models import AidRequest, Assignment, Match, User, utcnow
from schemas import AidRequestCreate, AidRequestUpdate
from .auth import CurrentUserDep, RequesterDep

router = APIRouter(prefix="/requests", tags=["requests"])
logger = logging.getLogger(__name__)


def request_row(req: AidRequest, requester: Optional[User]) -> dict:
    row = req.model_dump()
    row["first_name"] = requester.first_name if requester else None
    row["last_name"] = requester.last_name if requester else None
    row["email"] = requester.email if requester else None
    return row


def load_request_rows(
    session: Session,
    urgency: Optional[str] = None,
    status: Optional[str] = None,
    aid_type: Optional[str] = None,
    search: Optional[str] = None,
) -> List[dict]:
    """Requests joined with their requester, newest first."""
    query = select(AidRequest, User).join(User, User.id == AidRequest.requester_id)
    if urgency:
        query = query.where(AidRequest.urgency == urgency)
    if status:
        query = query.where(AidRequest.status == status)
    if aid_type:
        query = query.where(col(AidRequest.aid_type).ilike(aid_type.strip()))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                col(User.first_name).ilike(pattern),
                col(User.last_name).ilike(pattern),
                col(User.email).ilike(pattern),
            )
        )
    query = query.order_by(col(AidRequest.created_at).desc(), col(AidRequest.id).desc())
    return [request_row(req, user) for req, user in session.exec(query).all()]


def get_request_or_404(session: Session, request_id: int) -> AidRequest:
    req = session.get(AidRequest, request_id)
    if req is None:
        raise HTTPException(status_code=404, detail="Aid request not found")
    return req


def delete_aid_request(session: Session, req: AidRequest) -> None:
    """
    Remove a request with its matches and assignments. Pending assignments
    are released first so drawn stock returns to its resource. Does not commit.
    """
    for assignment in session.exec(
        select(Assignment).where(Assignment.request_id == req.id)
    ).all():
        release_assignment(session, assignment)
    session.flush()
    for match in session.exec(select(Match).where(Match.request_id == req.id)).all():
        session.delete(match)
    session.flush()
    session.delete(req)


def apply_request_update(session: Session, req: AidRequest, update: AidRequestUpdate) -> None:
    """
    Apply the given fields. Pending proposals for the request are dropped when
    its type, quantity or position changes, so the next matching run
    re-evaluates it.
    """
    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in changes.items():
        setattr(req, key, value)
    req.updated_at = utcnow()

    if changes.keys() & {"aid_type", "quantity", "latitude", "longitude"}:
        for match in session.exec(
            select(Match).where(Match.request_id == req.id, Match.status == "pending")
        ).all():
            session.delete(match)


@router.get("")
def list_requests(
    session: SessionDep,
    urgency: Optional[str] = None,
    status: Optional[str] = None,
    aid_type: Optional[str] = None,
    search: Optional[str] = None,
    latitude: Optional[float] = Query(default=None, ge=-90, le=90),
    longitude: Optional[float] = Query(default=None, ge=-180, le=180),
    radius: Optional[float] = Query(default=None, gt=0, description="Radius in km"),
) -> Any:
    """
    List aid requests. Given latitude, longitude and radius, only requests
    inside the radius are returned, nearest first, with ``distance_km``.
    """
    rows = load_request_rows(session, urgency, status, aid_type, search)

    geo_params = (latitude, longitude, radius)
    if any(p is not None for p in geo_params):
        if any(p is None for p in geo_params):
            raise HTTPException(
                status_code=400,
                detail="latitude, longitude and radius must be given together",
            )
        nearby = []
        for row in rows:
            inside, distance = within_radius(
                (latitude, longitude), (row["latitude"], row["longitude"]), radius
            )
            if inside:
                row["distance_km"] = round(distance, 3)
                nearby.append(row)
        nearby.sort(key=lambda r: (r["distance_km"], r["id"]))
        rows = nearby

    return {"status": "success", "results": len(rows), "data": rows}


@router.get("/my-requests")
def my_requests(session: SessionDep, current: RequesterDep) -> Any:
    reqs = session.exec(
        select(AidRequest)
        .where(AidRequest.requester_id == current.id)
        .order_by(col(AidRequest.created_at).desc(), col(AidRequest.id).desc())
    ).all()
    return {"status": "success", "results": len(reqs), "data": reqs}


@router.post("", status_code=201)
def create_request(request_in: AidRequestCreate, session: SessionDep, current: RequesterDep) -> Any:
    req = AidRequest(
        requester_id=current.id,
        aid_type=request_in.aid_type.strip(),
        quantity=request_in.quantity,
        urgency=request_in.urgency,
        latitude=request_in.latitude,
        longitude=request_in.longitude,
        status="pending",
    )
    session.add(req)
    session.commit()
    session.refresh(req)
    logger.info("Aid request %s created by user %s (%s, %s)", req.id, current.id, req.aid_type, req.urgency)
    return {"status": "success", "data": req}


@router.get("/{request_id}")
def get_request(request_id: int, session: SessionDep) -> Any:
    req = get_request_or_404(session, request_id)
    return {"status": "success", "data": req}


@router.patch("/{request_id}")
def update_request(
    request_id: int,
    update: AidRequestUpdate,
    session: SessionDep,
    current: CurrentUserDep,
) -> Any:
    req = get_request_or_404(session, request_id)
    if current.role != "admin":
        if req.requester_id != current.id:
            raise HTTPException(status_code=403, detail="You can only edit your own requests.")
        if req.status != "pending":
            raise HTTPException(status_code=400, detail="Only pending requests can be edited")

    apply_request_update(session, req, update)
    session.add(req)
    session.commit()
    session.refresh(req)
    return {"status": "success", "data": req}


@router.delete("/{request_id}", status_code=204)
def delete_request(request_id: int, session: SessionDep, current: CurrentUserDep):
    req = get_request_or_404(session, request_id)
    if current.role != "admin" and req.requester_id != current.id:
        raise HTTPException(status_code=403, detail="You can only delete your own requests.")
    if req.status != "pending":
        raise HTTPException(status_code=400, detail="Only pending requests can be deleted")

    delete_aid_request(session, req)
    session.commit()
    logger.info("Aid request %s deleted by user %s", request_id, current.id)
    return Response(status_code=204)
