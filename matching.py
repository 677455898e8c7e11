"""
Matching and assignment workflow.

Open aid requests are paired with nearby donor resources of the same type
(``find_matches``). An admin then confirms a proposed pair by naming a
volunteer, which draws the resource down and creates an assignment
(``confirm_match``). Admins may also assign a volunteer directly
(``assign_volunteer``). The volunteer closes the loop with
``complete_assignment``.

Every operation here works on an open session and commits on success.
Failures raise ``HTTPException`` before anything is written.
"""
import logging
from typing import Dict, List, Optional, Set, Tuple

from fastapi import HTTPException
from sqlmodel import Session, select

from geo import haversine_km
from models import AidRequest, Assignment, Match, Resource, User, utcnow

logger = logging.getLogger(__name__)

URGENCY_RANK = {"high": 3, "medium": 2, "low": 1}


def normalise_type(value: str) -> str:
    return value.strip().lower()


def priority_key(req: AidRequest) -> tuple:
    """Most urgent first, then oldest, then lowest id."""
    return (-URGENCY_RANK.get(req.urgency, 0), req.created_at, req.id or 0)


def refresh_resource_status(resource: Resource) -> None:
    resource.status = "available" if resource.quantity > 0 else "allocated"
    resource.updated_at = utcnow()


def _distance(req: AidRequest, res: Resource) -> float:
    return haversine_km(req.latitude, req.longitude, res.latitude, res.longitude)


def _reserved_quantities(session: Session) -> Dict[int, int]:
    """Quantity already promised to pending matches, per resource."""
    rows = session.exec(
        select(Match.resource_id, AidRequest.quantity)
        .join(AidRequest, AidRequest.id == Match.request_id)
        .where(Match.status == "pending")
    ).all()
    reserved: Dict[int, int] = {}
    for resource_id, quantity in rows:
        reserved[resource_id] = reserved.get(resource_id, 0) + quantity
    return reserved


def find_matches(
    session: Session,
    radius_km: float,
    request_id: Optional[int] = None,
) -> List[Match]:
    """
    Propose a resource for every pending request that has no pending match yet.

    Requests are served in priority order and each takes the nearest resource
    whose unreserved quantity covers it completely. Pairs an admin already
    rejected are skipped. Returns the new matches in creation order.
    """
    query = select(AidRequest).where(AidRequest.status == "pending")
    if request_id is not None:
        if session.get(AidRequest, request_id) is None:
            raise HTTPException(status_code=404, detail="Aid request not found")
        query = query.where(AidRequest.id == request_id)
    requests = sorted(session.exec(query).all(), key=priority_key)

    already_matched: Set[int] = set(
        session.exec(select(Match.request_id).where(Match.status == "pending")).all()
    )
    rejected_pairs: Set[Tuple[int, int]] = {
        (m.request_id, m.resource_id)
        for m in session.exec(select(Match).where(Match.status == "rejected")).all()
    }
    reserved = _reserved_quantities(session)

    resources_by_type: Dict[str, List[Resource]] = {}
    for res in session.exec(select(Resource).where(Resource.quantity > 0)).all():
        resources_by_type.setdefault(normalise_type(res.resource_type), []).append(res)

    created: List[Match] = []
    for req in requests:
        if req.id in already_matched:
            continue

        best: Optional[Tuple[float, int, Resource]] = None
        for res in resources_by_type.get(normalise_type(req.aid_type), []):
            if (req.id, res.id) in rejected_pairs:
                continue
            free = res.quantity - reserved.get(res.id, 0)
            if free < req.quantity:
                continue
            distance = _distance(req, res)
            if distance > radius_km:
                continue
            if best is None or (distance, res.id) < (best[0], best[1]):
                best = (distance, res.id, res)

        if best is None:
            logger.debug("No resource within %.1f km for request %s", radius_km, req.id)
            continue

        distance, resource_id, _ = best
        match = Match(
            request_id=req.id,
            resource_id=resource_id,
            distance_km=round(distance, 3),
            status="pending",
        )
        session.add(match)
        created.append(match)
        reserved[resource_id] = reserved.get(resource_id, 0) + req.quantity

    session.commit()
    for match in created:
        session.refresh(match)

    logger.info(
        "Matching run: %d candidate requests, %d new matches (radius %.1f km)",
        len(requests),
        len(created),
        radius_km,
    )
    return created


def candidate_resources(
    session: Session,
    req: AidRequest,
    radius_km: Optional[float] = None,
) -> List[dict]:
    """
    Rank every in-stock resource of the request's type: resources that cover
    the full quantity first, then nearest. Nothing is written.
    """
    wanted = normalise_type(req.aid_type)
    rows = []
    for res in session.exec(select(Resource).where(Resource.quantity > 0)).all():
        if normalise_type(res.resource_type) != wanted:
            continue
        distance = _distance(req, res)
        if radius_km is not None and distance > radius_km:
            continue
        rows.append(
            {
                "resource": res,
                "distance_km": round(distance, 3),
                "covers_request": res.quantity >= req.quantity,
            }
        )
    rows.sort(key=lambda r: (not r["covers_request"], r["distance_km"], r["resource"].id))
    return rows


def _get_volunteer(session: Session, volunteer_id: int) -> User:
    volunteer = session.get(User, volunteer_id)
    if volunteer is None or volunteer.role != "volunteer":
        raise HTTPException(
            status_code=400,
            detail="Assignee must be an existing volunteer",
        )
    return volunteer


def _reject_pending(session: Session, matches: List[Match]) -> None:
    now = utcnow()
    for other in matches:
        other.status = "rejected"
        other.decided_at = now
        session.add(other)


def _lock_resource(session: Session, resource_id: int) -> Optional[Resource]:
    """Load a resource with its row locked until commit."""
    return session.exec(
        select(Resource)
        .where(Resource.id == resource_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()


def _draw_down(resource: Resource, req: AidRequest) -> int:
    if resource.quantity < req.quantity:
        raise HTTPException(
            status_code=400,
            detail="Resource no longer has enough quantity for this request",
        )
    resource.quantity -= req.quantity
    refresh_resource_status(resource)
    return req.quantity


def confirm_match(session: Session, match_id: int, volunteer_id: int) -> Assignment:
    """
    Accept a proposed match and hand it to a volunteer.
    """
    match = session.get(Match, match_id)
    if match is None:
        raise HTTPException(status_code=404, detail="Match not found")
    if match.status != "pending":
        raise HTTPException(status_code=400, detail="Only pending matches can be confirmed")

    volunteer = _get_volunteer(session, volunteer_id)

    req = session.get(AidRequest, match.request_id)
    resource = _lock_resource(session, match.resource_id)
    if req is None or resource is None:
        raise HTTPException(status_code=400, detail="Match refers to a deleted request or resource")
    if req.status != "pending":
        raise HTTPException(status_code=400, detail="Aid request is no longer pending")

    drawn = _draw_down(resource, req)

    now = utcnow()
    match.status = "confirmed"
    match.decided_at = now
    req.status = "assigned"
    req.updated_at = now

    # the request is taken, so its other proposals are void
    _reject_pending(
        session,
        session.exec(
            select(Match).where(
                Match.request_id == req.id,
                Match.status == "pending",
                Match.id != match.id,
            )
        ).all(),
    )

    # proposals on this resource that no longer fit what is left
    crowded_out = []
    for other, other_qty in session.exec(
        select(Match, AidRequest.quantity)
        .join(AidRequest, AidRequest.id == Match.request_id)
        .where(
            Match.resource_id == resource.id,
            Match.status == "pending",
            Match.id != match.id,
        )
    ).all():
        if other_qty > resource.quantity:
            crowded_out.append(other)
    _reject_pending(session, crowded_out)

    assignment = Assignment(
        request_id=req.id,
        volunteer_id=volunteer.id,
        resource_id=resource.id,
        match_id=match.id,
        quantity=drawn,
        status="pending",
    )
    session.add_all([match, req, resource, assignment])
    session.commit()
    session.refresh(assignment)

    logger.info(
        "Match %s confirmed: request %s <- resource %s, volunteer %s",
        match.id,
        req.id,
        resource.id,
        volunteer.id,
    )
    return assignment


def reject_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if match is None:
        raise HTTPException(status_code=404, detail="Match not found")
    if match.status != "pending":
        raise HTTPException(status_code=400, detail="Only pending matches can be rejected")
    _reject_pending(session, [match])
    session.commit()
    session.refresh(match)
    logger.info("Match %s rejected", match.id)
    return match


def assign_volunteer(
    session: Session,
    request_id: int,
    volunteer_id: int,
    resource_id: Optional[int] = None,
) -> Assignment:
    """
    Assign a volunteer to a pending request without going through a match.
    """
    req = session.get(AidRequest, request_id)
    if req is None:
        raise HTTPException(status_code=404, detail="Aid request not found")
    if req.status != "pending":
        raise HTTPException(status_code=400, detail="Only pending requests can be assigned")

    volunteer = _get_volunteer(session, volunteer_id)

    resource: Optional[Resource] = None
    drawn = 0
    if resource_id is not None:
        resource = _lock_resource(session, resource_id)
        if resource is None:
            raise HTTPException(status_code=404, detail="Resource not found")
        if normalise_type(resource.resource_type) != normalise_type(req.aid_type):
            raise HTTPException(
                status_code=400,
                detail="Resource type does not match the requested aid type",
            )
        drawn = _draw_down(resource, req)
        session.add(resource)

    now = utcnow()
    req.status = "assigned"
    req.updated_at = now
    _reject_pending(
        session,
        session.exec(
            select(Match).where(Match.request_id == req.id, Match.status == "pending")
        ).all(),
    )

    assignment = Assignment(
        request_id=req.id,
        volunteer_id=volunteer.id,
        resource_id=resource.id if resource else None,
        quantity=drawn,
        status="pending",
    )
    session.add_all([req, assignment])
    session.commit()
    session.refresh(assignment)

    logger.info("Volunteer %s assigned to request %s", volunteer.id, req.id)
    return assignment


def complete_assignment(session: Session, assignment: Assignment, volunteer: User) -> Assignment:
    if assignment.volunteer_id != volunteer.id:
        raise HTTPException(
            status_code=403,
            detail="You can only complete your own assignments.",
        )
    if assignment.status != "pending":
        raise HTTPException(status_code=400, detail="Assignment is already fulfilled")

    now = utcnow()
    assignment.status = "fulfilled"
    assignment.completed_at = now

    req = session.get(AidRequest, assignment.request_id)
    if req is not None:
        req.status = "fulfilled"
        req.updated_at = now
        session.add(req)

    session.add(assignment)
    session.commit()
    session.refresh(assignment)
    logger.info("Assignment %s fulfilled by volunteer %s", assignment.id, volunteer.id)
    return assignment


def release_assignment(session: Session, assignment: Assignment) -> None:
    """
    Undo a pending assignment: the drawn stock goes back to the resource and
    the request re-enters the pool. A fulfilled assignment is only deleted,
    so releasing a volunteer's assignments also removes their delivery
    history. Does not commit.
    """
    if assignment.status != "pending":
        session.delete(assignment)
        return

    req = session.get(AidRequest, assignment.request_id)
    if assignment.resource_id is not None and assignment.quantity:
        resource = _lock_resource(session, assignment.resource_id)
        if resource is not None:
            resource.quantity += assignment.quantity
            refresh_resource_status(resource)
            session.add(resource)
    if req is not None:
        req.status = "pending"
        req.updated_at = utcnow()
        session.add(req)
    if assignment.match_id is not None:
        match = session.get(Match, assignment.match_id)
        if match is not None:
            _reject_pending(session, [match])

    session.delete(assignment)
    logger.info("Assignment %s released, request %s back to pending", assignment.id, assignment.request_id)
