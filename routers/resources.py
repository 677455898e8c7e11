import logging
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException, Response
from sqlmodel import Session, col, or_, select

from db import SessionDep
from matching import refresh_resource_status
from models import Assignment, Match, Resource, User
from schemas import ResourceCreate, ResourceUpdate
from .auth import CurrentUserDep, DonorDep

router = APIRouter(prefix="/resources", tags=["resources"])
logger = logging.getLogger(__name__)


def load_resource_rows(
    session: Session,
    search: Optional[str] = None,
    resource_type: Optional[str] = None,
    status: Optional[str] = None,
) -> List[dict]:
    """Resources joined with their donor, newest first."""
    query = select(Resource, User).join(User, User.id == Resource.donor_id)
    if resource_type:
        query = query.where(col(Resource.resource_type).ilike(resource_type.strip()))
    if status:
        query = query.where(Resource.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                col(User.first_name).ilike(pattern),
                col(User.last_name).ilike(pattern),
                col(User.email).ilike(pattern),
                col(Resource.resource_type).ilike(pattern),
            )
        )
    query = query.order_by(col(Resource.created_at).desc(), col(Resource.id).desc())

    rows = []
    for res, donor in session.exec(query).all():
        row = res.model_dump()
        row["first_name"] = donor.first_name
        row["last_name"] = donor.last_name
        row["email"] = donor.email
        rows.append(row)
    return rows


def get_resource_or_404(session: Session, resource_id: int) -> Resource:
    resource = session.get(Resource, resource_id)
    if resource is None:
        raise HTTPException(status_code=404, detail="Resource not found")
    return resource


def _ensure_can_manage(resource: Resource, user: User) -> None:
    if user.role != "admin" and resource.donor_id != user.id:
        raise HTTPException(
            status_code=403,
            detail="You can only manage resources you donated.",
        )


def update_resource(session: Session, resource: Resource, update: ResourceUpdate) -> Resource:
    """
    Apply an edit. Pending proposals on the resource are dropped when its
    type, quantity or position changes.
    """
    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in changes.items():
        setattr(resource, key, value)
    refresh_resource_status(resource)

    if changes:
        for match in session.exec(
            select(Match).where(Match.resource_id == resource.id, Match.status == "pending")
        ).all():
            session.delete(match)

    session.add(resource)
    session.commit()
    session.refresh(resource)
    return resource


def delete_resource(session: Session, resource: Resource) -> None:
    """
    Remove a resource and all its proposals. A resource that an open
    assignment is drawing on cannot be deleted. Fulfilled assignments keep
    their history but lose the link. Does not commit.
    """
    assignments = session.exec(
        select(Assignment).where(Assignment.resource_id == resource.id)
    ).all()
    if any(a.status == "pending" for a in assignments):
        raise HTTPException(
            status_code=400,
            detail="Cannot delete a resource that is committed to an open assignment.",
        )
    for assignment in assignments:
        assignment.resource_id = None
        assignment.match_id = None
        session.add(assignment)
    session.flush()

    for match in session.exec(select(Match).where(Match.resource_id == resource.id)).all():
        session.delete(match)
    session.flush()
    session.delete(resource)


@router.get("")
def list_resources(
    session: SessionDep,
    resource_type: Optional[str] = None,
    status: Optional[str] = None,
) -> Any:
    rows = load_resource_rows(session, resource_type=resource_type, status=status)
    return {"status": "success", "results": len(rows), "data": rows}


@router.get("/my-resources")
def my_resources(session: SessionDep, current: DonorDep) -> Any:
    resources = session.exec(
        select(Resource)
        .where(Resource.donor_id == current.id)
        .order_by(col(Resource.created_at).desc(), col(Resource.id).desc())
    ).all()
    return {"status": "success", "results": len(resources), "data": resources}


@router.post("", status_code=201)
def create_resource(resource_in: ResourceCreate, session: SessionDep, current: DonorDep) -> Any:
    """
    Register a donation at the given position.
    """
    resource = Resource(
        donor_id=current.id,
        resource_type=resource_in.resource_type.strip(),
        quantity=resource_in.quantity,
        latitude=resource_in.latitude,
        longitude=resource_in.longitude,
        status="available",
    )
    session.add(resource)
    session.commit()
    session.refresh(resource)
    logger.info(
        "Resource %s registered by user %s (%s x%d)",
        resource.id,
        current.id,
        resource.resource_type,
        resource.quantity,
    )
    return {"status": "success", "data": resource}


@router.get("/{resource_id}")
def get_resource(resource_id: int, session: SessionDep) -> Any:
    return {"status": "success", "data": get_resource_or_404(session, resource_id)}


@router.patch("/{resource_id}")
def patch_resource(
    resource_id: int,
    update: ResourceUpdate,
    session: SessionDep,
    current: CurrentUserDep,
) -> Any:
    resource = get_resource_or_404(session, resource_id)
    _ensure_can_manage(resource, current)
    resource = update_resource(session, resource, update)
    return {"status": "success", "data": resource}


@router.delete("/{resource_id}", status_code=204)
def remove_resource(resource_id: int, session: SessionDep, current: CurrentUserDep):
    resource = get_resource_or_404(session, resource_id)
    _ensure_can_manage(resource, current)
    delete_resource(session, resource)
    session.commit()
    logger.info("Resource %s deleted by user %s", resource_id, current.id)
    return Response(status_code=204)
