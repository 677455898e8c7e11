from typing import Any

from fastapi import APIRouter, HTTPException
from sqlmodel import col, select

from db import SessionDep
from matching import assign_volunteer, complete_assignment
from models import AidRequest, Assignment, ContactInfo, User
from schemas import AssignmentCreate
from .auth import AdminDep, VolunteerDep

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("", status_code=201)
def create_assignment(payload: AssignmentCreate, session: SessionDep, current: AdminDep) -> Any:
    """
    Assign a volunteer to a pending request, optionally drawing on a resource.
    """
    assignment = assign_volunteer(
        session,
        payload.request_id,
        payload.volunteer_id,
        resource_id=payload.resource_id,
    )
    return {"status": "success", "data": assignment}


@router.get("")
def list_assignments(session: SessionDep, current: AdminDep) -> Any:
    rows = session.exec(
        select(Assignment, AidRequest, User)
        .join(AidRequest, AidRequest.id == Assignment.request_id)
        .join(User, User.id == Assignment.volunteer_id)
        .order_by(col(Assignment.id).desc())
    ).all()
    data = []
    for assignment, req, volunteer in rows:
        row = assignment.model_dump()
        row["aid_type"] = req.aid_type
        row["urgency"] = req.urgency
        row["quantity"] = req.quantity
        row["request_status"] = req.status
        row["volunteer_email"] = volunteer.email
        row["volunteer_name"] = f"{volunteer.first_name} {volunteer.last_name}"
        data.append(row)
    return {"status": "success", "results": len(data), "data": data}


@router.get("/my-assignments")
def my_assignments(session: SessionDep, current: VolunteerDep) -> Any:
    """
    The caller's tasks, with what to deliver and where.
    """
    rows = session.exec(
        select(Assignment, AidRequest)
        .join(AidRequest, AidRequest.id == Assignment.request_id)
        .where(Assignment.volunteer_id == current.id)
        .order_by(col(Assignment.created_at).desc(), col(Assignment.id).desc())
    ).all()

    data = []
    for assignment, req in rows:
        contact = session.exec(
            select(ContactInfo).where(ContactInfo.user_id == req.requester_id)
        ).first()
        data.append(
            {
                "assignment_id": assignment.id,
                "request_id": req.id,
                "resource_id": assignment.resource_id,
                "status": assignment.status,
                "aid_type": req.aid_type,
                "urgency": req.urgency,
                "quantity": req.quantity,
                "latitude": req.latitude,
                "longitude": req.longitude,
                "assigned_at": assignment.created_at,
                "completed_at": assignment.completed_at,
                "requester_contact": contact,
            }
        )
    return {"status": "success", "results": len(data), "data": data}


@router.patch("/{assignment_id}/complete")
def complete(assignment_id: int, session: SessionDep, current: VolunteerDep) -> Any:
    assignment = session.get(Assignment, assignment_id)
    if assignment is None:
        raise HTTPException(status_code=404, detail="Assignment not found")
    assignment = complete_assignment(session, assignment, current)
    return {"status": "success", "data": assignment}
