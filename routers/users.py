# routers/users.py
from typing import Any

from sqlmodel import select
from fastapi import APIRouter

from db import SessionDep
from models import ContactInfo, utcnow
from schemas import ContactInfoIn, UserRead
from .auth import CurrentUserDep

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me")
def read_me(current: CurrentUserDep) -> Any:
    """
    Get info about the currently logged-in user.
    """
    return {"status": "success", "data": {"user": UserRead.model_validate(current)}}


@router.get("/me/contact-info")
def get_my_contact_info(session: SessionDep, current: CurrentUserDep) -> Any:
    info = session.exec(
        select(ContactInfo).where(ContactInfo.user_id == current.id)
    ).first()
    return {"status": "success", "data": {"contactInfo": info}}


@router.post("/me/contact-info")
def save_my_contact_info(
    info_in: ContactInfoIn,
    session: SessionDep,
    current: CurrentUserDep,
) -> Any:
    """
    Create or replace the caller's contact details. The name on the
    account follows the name given here.
    """
    info = session.exec(
        select(ContactInfo).where(ContactInfo.user_id == current.id)
    ).first()
    if info is None:
        info = ContactInfo(user_id=current.id, **info_in.model_dump())
    else:
        for key, value in info_in.model_dump().items():
            setattr(info, key, value)
        info.updated_at = utcnow()

    current.first_name = info_in.first_name
    current.last_name = info_in.last_name

    session.add(info)
    session.add(current)
    session.commit()
    session.refresh(info)
    return {"status": "success", "data": {"contactInfo": info}}
