"""Dashboard DSAR management. Every row is decorated with its deadline state at read time."""
import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from compliancekit.auth import require_user
from compliancekit.database import DB, get_db
from compliancekit.exceptions import NotFoundError, ValidationError
from compliancekit.rate_limit import client_identifier, rate_limited
from compliancekit.security_log import log_data_access
from compliancekit.services.dsar_rules import activity, plan_update, summarize, with_deadline
from compliancekit.utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(rate_limited())])

DsarStatus = Literal["pending", "verified", "in_progress", "completed", "rejected"]
DsarPriority = Literal["low", "normal", "high", "urgent"]

LIST_COLUMNS = (
    "id,website_id,request_type,requester_email,requester_name,status,priority,"
    "assigned_to,created_at,due_date,verified_at,completed_at"
)


async def _website_ids(db: DB, user_id: str) -> list[str]:
    websites = await db.select("websites", columns="id", filters={"user_id": f"eq.{user_id}"})
    return [w["id"] for w in websites]


async def _owned_dsar(db: DB, user_id: str, dsar_id: str) -> dict:
    dsar = await db.select_one("data_subject_requests", filters={"id": f"eq.{dsar_id}"})
    if not dsar or dsar["website_id"] not in await _website_ids(db, user_id):
        raise NotFoundError("DSAR", dsar_id)
    return dsar


async def _log_activities(db: DB, dsar_id: str, activities: list[dict], performed_by: str):
    if not activities:
        return
    await db.insert("dsar_activities", [
        {"dsar_id": dsar_id, "performed_by": performed_by, **activity}
        for activity in activities
    ])


@router.get("")
async def list_dsars(
    status: DsarStatus | None = Query(None),
    website_id: str | None = Query(None),
    payload: dict = Depends(require_user),
):
    db = get_db()
    website_ids = await _website_ids(db, payload["user_id"])
    if website_id:
        website_ids = [w for w in website_ids if w == website_id]
    if not website_ids:
        return {"requests": [], "total": 0}

    filters = {"website_id": f"in.({','.join(website_ids)})"}
    if status:
        filters["status"] = f"eq.{status}"
    rows = await db.select("data_subject_requests", columns=LIST_COLUMNS, filters=filters, order="created_at.desc")

    now = utcnow()
    return {"requests": [with_deadline(row, now) for row in rows], "total": len(rows)}


@router.get("/stats")
async def dsar_stats(payload: dict = Depends(require_user)):
    db = get_db()
    website_ids = await _website_ids(db, payload["user_id"])
    if not website_ids:
        return summarize([])
    rows = await db.select(
        "data_subject_requests",
        columns="id,status,request_type,created_at,due_date,completed_at",
        filters={"website_id": f"in.({','.join(website_ids)})"},
    )
    return summarize(rows)


@router.get("/{dsar_id}")
async def get_dsar(dsar_id: str, request: Request, payload: dict = Depends(require_user)):
    db = get_db()
    dsar = await _owned_dsar(db, payload["user_id"], dsar_id)
    activities = await db.select(
        "dsar_activities",
        filters={"dsar_id": f"eq.{dsar_id}"},
        order="created_at.desc",
    )
    log_data_access(payload["user_id"], f"dsar:{dsar_id}", "view", client_identifier(request.headers))
    return {**with_deadline(dsar), "activities": activities}


class DsarUpdate(BaseModel):
    status: DsarStatus | None = None
    priority: DsarPriority | None = None
    assigned_to: str | None = None
    internal_notes: str | None = Field(None, max_length=10000)
    response_content: str | None = Field(None, max_length=50000)


@router.patch("/{dsar_id}")
async def update_dsar(dsar_id: str, body: DsarUpdate, payload: dict = Depends(require_user)):
    db = get_db()
    dsar = await _owned_dsar(db, payload["user_id"], dsar_id)

    update_data, activities = plan_update(dsar, body.model_dump(exclude_unset=True))
    if not update_data:
        raise ValidationError("No fields to update")

    rows = await db.update("data_subject_requests", update_data, filters={"id": f"eq.{dsar_id}"})
    await _log_activities(db, dsar_id, activities, payload["user_id"])
    return with_deadline(rows[0] if rows else {**dsar, **update_data})


class NoteRequest(BaseModel):
    note: str = Field(min_length=1, max_length=5000)


@router.post("/{dsar_id}/notes")
async def add_note(dsar_id: str, body: NoteRequest, payload: dict = Depends(require_user)):
    db = get_db()
    await _owned_dsar(db, payload["user_id"], dsar_id)
    await _log_activities(db, dsar_id, [activity("note_added", body.note)], payload["user_id"])
    return {"ok": True}


class CompleteRequest(BaseModel):
    response_content: str = Field(min_length=1, max_length=50000)


@router.post("/{dsar_id}/complete")
async def complete_dsar(dsar_id: str, body: CompleteRequest, payload: dict = Depends(require_user)):
    db = get_db()
    await _owned_dsar(db, payload["user_id"], dsar_id)
    await db.update(
        "data_subject_requests",
        {"status": "completed", "response_content": body.response_content, "completed_at": utcnow().isoformat()},
        filters={"id": f"eq.{dsar_id}"},
    )
    await _log_activities(
        db, dsar_id,
        [activity("completed", "Request completed and response sent")],
        payload["user_id"],
    )
    return {"ok": True}


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=5000)


@router.post("/{dsar_id}/reject")
async def reject_dsar(dsar_id: str, body: RejectRequest, payload: dict = Depends(require_user)):
    db = get_db()
    await _owned_dsar(db, payload["user_id"], dsar_id)
    await db.update(
        "data_subject_requests",
        {"status": "rejected", "response_content": body.reason, "completed_at": utcnow().isoformat()},
        filters={"id": f"eq.{dsar_id}"},
    )
    await _log_activities(
        db, dsar_id,
        [activity("rejected", f"Request rejected: {body.reason}")],
        payload["user_id"],
    )
    return {"ok": True}
