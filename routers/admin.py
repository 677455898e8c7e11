import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, Response
from sqlalchemy import func
from sqlmodel import Session, col, or_, select

from db import SessionDep
from matching import candidate_resources, release_assignment
from models import AidRequest, Assignment, ContactInfo, Match, Resource, User
from schemas import AidRequestUpdate, ResourceUpdate, RoleUpdate, UrgencyUpdate, UserRead
from .auth import AdminDep
from .requests import (
    apply_request_update,
    delete_aid_request,
    get_request_or_404,
    load_request_rows,
)
from .resources import (
    delete_resource,
    get_resource_or_404,
    load_resource_rows,
    update_resource,
)

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


def _get_user_or_404(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _open_assignments(session: Session, volunteer_id: int) -> list:
    return session.exec(
        select(Assignment).where(
            Assignment.volunteer_id == volunteer_id,
            Assignment.status == "pending",
        )
    ).all()


def delete_user_cascade(session: Session, user: User) -> None:
    """
    Delete a user and everything that hangs off them. Does not commit.
    """
    my_resources = session.exec(select(Resource).where(Resource.donor_id == user.id)).all()
    resource_ids = [r.id for r in my_resources]
    if resource_ids:
        busy = session.exec(
            select(Assignment.id).where(
                col(Assignment.resource_id).in_(resource_ids),
                Assignment.status == "pending",
            )
        ).first()
        if busy is not None:
            raise HTTPException(
                status_code=400,
                detail="User's resources are committed to open assignments.",
            )

    # 1) Release the tasks this user was delivering
    for assignment in session.exec(
        select(Assignment).where(Assignment.volunteer_id == user.id)
    ).all():
        release_assignment(session, assignment)
    session.flush()

    # 2) Requests made by this user, with their matches and assignments
    for req in session.exec(select(AidRequest).where(AidRequest.requester_id == user.id)).all():
        delete_aid_request(session, req)
    session.flush()

    # 3) Resources donated by this user, with their matches
    for resource in my_resources:
        delete_resource(session, resource)
    session.flush()

    # 4) Contact details, then the account itself
    for info in session.exec(select(ContactInfo).where(ContactInfo.user_id == user.id)).all():
        session.delete(info)
    session.flush()
    session.delete(user)


# ---- users ----

@router.get("/users")
def list_users(session: SessionDep, current: AdminDep, search: Optional[str] = None) -> Any:
    """
    List users, optionally filtered by name or email.
    """
    query = select(User)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                col(User.first_name).ilike(pattern),
                col(User.last_name).ilike(pattern),
                col(User.email).ilike(pattern),
            )
        )
    users = session.exec(query.order_by(col(User.id))).all()
    data = [UserRead.model_validate(u) for u in users]
    return {"status": "success", "results": len(data), "data": data}


@router.patch("/users/{user_id}")
def update_user_role(
    user_id: int,
    update: RoleUpdate,
    session: SessionDep,
    current: AdminDep,
) -> Any:
    user = _get_user_or_404(session, user_id)
    if user.id == current.id and update.role != "admin":
        raise HTTPException(status_code=400, detail="You cannot demote yourself.")
    if user.role == "volunteer" and update.role != "volunteer" and _open_assignments(session, user.id):
        raise HTTPException(
            status_code=400,
            detail="Volunteer still has open assignments.",
        )

    old_role = user.role
    user.role = update.role
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Admin %s changed role of user %s: %s -> %s", current.id, user.id, old_role, user.role)
    return {"status": "success", "data": UserRead.model_validate(user)}


@router.delete("/users/{user_id}", status_code=204)
def delete_user(user_id: int, session: SessionDep, current: AdminDep):
    if user_id == current.id:
        raise HTTPException(status_code=400, detail="You cannot delete yourself.")
    user = _get_user_or_404(session, user_id)
    try:
        delete_user_cascade(session, user)
        session.commit()
    except HTTPException:
        session.rollback()
        raise
    logger.info("Admin %s deleted user %s", current.id, user_id)
    return Response(status_code=204)


# ---- requests ----

@router.get("/requests")
def list_all_requests(
    session: SessionDep,
    current: AdminDep,
    search: Optional[str] = None,
    urgency: Optional[str] = None,
    status: Optional[str] = None,
) -> Any:
    rows = load_request_rows(session, urgency=urgency, status=status, search=search)
    return {"status": "success", "results": len(rows), "data": rows}


@router.patch("/requests/{request_id}")
def admin_update_request(
    request_id: int,
    update: AidRequestUpdate,
    session: SessionDep,
    current: AdminDep,
) -> Any:
    req = get_request_or_404(session, request_id)
    apply_request_update(session, req, update)
    session.add(req)
    session.commit()
    session.refresh(req)
    return {"status": "success", "data": req}


@router.patch("/requests/{request_id}/urgency")
def update_request_urgency(
    request_id: int,
    update: UrgencyUpdate,
    session: SessionDep,
    current: AdminDep,
) -> Any:
    req = get_request_or_404(session, request_id)
    apply_request_update(session, req, AidRequestUpdate(urgency=update.urgency))
    session.add(req)
    session.commit()
    session.refresh(req)
    logger.info("Admin %s set urgency of request %s to %s", current.id, req.id, req.urgency)
    return {"status": "success", "data": req}


@router.delete("/requests/{request_id}", status_code=204)
def admin_delete_request(request_id: int, session: SessionDep, current: AdminDep):
    req = get_request_or_404(session, request_id)
    if req.status != "pending":
        raise HTTPException(status_code=400, detail="Only pending requests can be deleted")
    delete_aid_request(session, req)
    session.commit()
    logger.info("Admin %s deleted request %s", current.id, request_id)
    return Response(status_code=204)


@router.get("/requests/{request_id}/matches")
def request_candidates(
    request_id: int,
    session: SessionDep,
    current: AdminDep,
    radius_km: Optional[float] = Query(default=None, gt=0),
) -> Any:
    """
    Resources that could serve this request, best first.
    """
    req = get_request_or_404(session, request_id)
    rows = candidate_resources(session, req, radius_km)
    return {"status": "success", "results": len(rows), "data": rows}


# ---- resources ----

@router.get("/resources")
def list_all_resources(session: SessionDep, current: AdminDep, search: Optional[str] = None) -> Any:
    rows = load_resource_rows(session, search=search)
    return {"status": "success", "results": len(rows), "data": rows}


@router.patch("/resources/{resource_id}")
def admin_update_resource(
    resource_id: int,
    update: ResourceUpdate,
    session: SessionDep,
    current: AdminDep,
) -> Any:
    resource = get_resource_or_404(session, resource_id)
    resource = update_resource(session, resource, update)
    return {"status": "success", "data": resource}


@router.delete("/resources/{resource_id}", status_code=204)
def admin_delete_resource(resource_id: int, session: SessionDep, current: AdminDep):
    resource = get_resource_or_404(session, resource_id)
    delete_resource(session, resource)
    session.commit()
    logger.info("Admin %s deleted resource %s", current.id, resource_id)
    return Response(status_code=204)


# ---- reporting ----

def _count_by(session: Session, column) -> Dict[str, int]:
    rows = session.exec(select(column, func.count()).group_by(column)).all()
    return {key: count for key, count in rows}


@router.get("/stats")
def stats(session: SessionDep, current: AdminDep) -> Any:
    users_by_role = _count_by(session, User.role)
    requests_by_status = _count_by(session, AidRequest.status)
    resources_by_status = _count_by(session, Resource.status)
    data = {
        "users": {"total": sum(users_by_role.values()), "by_role": users_by_role},
        "requests": {"total": sum(requests_by_status.values()), "by_status": requests_by_status},
        "resources": {
            "total": sum(resources_by_status.values()),
            "available": resources_by_status.get("available", 0),
        },
        "matches": {"by_status": _count_by(session, Match.status)},
        "assignments": {"by_status": _count_by(session, Assignment.status)},
    }
    return {"status": "success", "data": data}


@router.get("/analytics/summary")
def aid_type_summary(session: SessionDep, current: AdminDep) -> Any:
    """
    Per aid type: number of requests in each status and total quantity asked for.
    """
    rows = session.exec(
        select(
            AidRequest.aid_type,
            AidRequest.status,
            func.count(),
            func.sum(AidRequest.quantity),
        ).group_by(AidRequest.aid_type, AidRequest.status)
    ).all()

    summary: Dict[str, dict] = {}
    for aid_type, status, count, quantity in rows:
        entry = summary.setdefault(
            aid_type,
            {
                "aid_type": aid_type,
                "total_requests": 0,
                "total_quantity": 0,
                "pending": 0,
                "assigned": 0,
                "fulfilled": 0,
            },
        )
        entry["total_requests"] += count
        entry["total_quantity"] += quantity or 0
        entry[status] = entry.get(status, 0) + count

    data = sorted(summary.values(), key=lambda e: (-e["total_requests"], e["aid_type"]))
    return {"status": "success", "results": len(data), "data": data}
