"""Notice API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator

from ..auth import Identity
from ..server.services import RealtimeServices
from .deps import get_identity, get_services

notice_router = APIRouter()


class NoticeCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)

    @field_validator("title", "message", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v

    @field_validator("title")
    @classmethod
    def blank_title_is_none(cls, v):
        return v or None


@notice_router.get("")
async def list_notices(services: RealtimeServices = Depends(get_services)):
    """Latest live notices, newest first."""
    notices = await services.notice_store.list_recent(limit=services.settings.notice_list_limit)
    return {"status": "success", "data": {"notices": [n.to_wire() for n in notices]}}


@notice_router.post("", status_code=status.HTTP_201_CREATED)
async def create_notice(
    body: NoticeCreate,
    identity: Identity = Depends(get_identity),
    services: RealtimeServices = Depends(get_services),
):
    """Admin only: persist a notice and push it to every live connection."""
    notice = await services.fanout.create_and_publish(identity, body.message, title=body.title)
    return {"status": "success", "data": notice.to_wire()}
