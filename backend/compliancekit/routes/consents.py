"""Dashboard view of consents recorded by the banner."""
import logging

from fastapi import APIRouter, Depends, Query, Request

from compliancekit.auth import require_user
from compliancekit.database import DB, get_db
from compliancekit.exceptions import NotFoundError
from compliancekit.rate_limit import client_identifier, rate_limited
from compliancekit.security_log import log_data_access
from compliancekit.services.consent_stats import summarize_consents

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(rate_limited())])


async def _owned_website(db: DB, user_id: str, website_id: str) -> dict:
    website = await db.select_one(
        "websites",
        columns="id",
        filters={"id": f"eq.{website_id}", "user_id": f"eq.{user_id}"},
    )
    if not website:
        raise NotFoundError("Website", website_id)
    return website


@router.get("")
async def list_consents(
    request: Request,
    website_id: str = Query(...),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    payload: dict = Depends(require_user),
):
    db = get_db()
    await _owned_website(db, payload["user_id"], website_id)
    filters = {"website_id": f"eq.{website_id}"}
    consents = await db.select(
        "consents", filters=filters, order="consented_at.desc", limit=limit, offset=offset,
    )
    total = await db.count("consents", filters=filters)
    log_data_access(payload["user_id"], f"consents:{website_id}", "list", client_identifier(request.headers))
    return {"consents": consents, "total": total}


@router.get("/stats")
async def consent_stats(website_id: str = Query(...), payload: dict = Depends(require_user)):
    db = get_db()
    await _owned_website(db, payload["user_id"], website_id)
    rows = await db.select("consents", columns="preferences", filters={"website_id": f"eq.{website_id}"})
    return summarize_consents(rows)


@router.delete("/{consent_id}")
async def delete_consent(consent_id: str, payload: dict = Depends(require_user)):
    db = get_db()
    consent = await db.select_one("consents", columns="id,website_id", filters={"id": f"eq.{consent_id}"})
    owned = consent and await db.select_one(
        "websites",
        columns="id",
        filters={"id": f"eq.{consent['website_id']}", "user_id": f"eq.{payload['user_id']}"},
    )
    if not owned:
        raise NotFoundError("Consent", consent_id)
    await db.delete("consents", filters={"id": f"eq.{consent_id}"})
    logger.info(f"Consent {consent_id} deleted by user {payload['user_id']}")
    return {"ok": True}
