"""Public DSAR submission form endpoints, embedded on customer websites."""
import logging
import secrets
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, Response
from pydantic import BaseModel, EmailStr, Field

from compliancekit.database import get_db
from compliancekit.exceptions import NotFoundError, ValidationError
from compliancekit.rate_limit import RateLimitPresets, client_identifier, rate_limited
from compliancekit.routes.widget import find_website
from compliancekit.sanitize import sanitize_email, sanitize_filter_value, sanitize_input
from compliancekit.security_log import SecurityEventType, log_suspicious_activity
from compliancekit.services.dsar_rules import (
    DSAR_RESPONSE_DAYS,
    activity,
    calculate_due_date,
    request_type_options,
)
from compliancekit.utils import mask_email, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

RequestType = Literal["access", "erasure", "rectification", "portability", "restriction", "objection"]


class DsarSubmission(BaseModel):
    request_type: RequestType
    requester_email: EmailStr
    requester_name: str | None = Field(None, max_length=200)
    requester_phone: str | None = Field(None, max_length=50)
    description: str = Field(min_length=10, max_length=5000)
    additional_info: str | None = Field(None, max_length=5000)


@router.options("/{embed_code}")
async def dsar_preflight(embed_code: str, request: Request):
    await find_website(request, embed_code, columns="id,url")
    return Response(status_code=204)


@router.get("/{embed_code}", dependencies=[Depends(rate_limited(RateLimitPresets.LENIENT))])
async def dsar_form_config(embed_code: str, request: Request):
    website = await find_website(
        request, embed_code, columns="id,url,name,company_name,company_email,dpo_name,dpo_email",
    )
    return {
        "website_name": website.get("name"),
        "company_name": website.get("company_name"),
        "contact_email": website.get("dpo_email") or website.get("company_email"),
        "dpo_name": website.get("dpo_name"),
        "request_types": request_type_options(),
    }


@router.post("/{embed_code}", dependencies=[Depends(rate_limited(RateLimitPresets.PUBLIC_FORM))])
async def submit_dsar(embed_code: str, body: DsarSubmission, request: Request):
    website = await find_website(request, embed_code, columns="id,url")
    db = get_db()

    email = sanitize_email(body.requester_email)
    now = utcnow()
    rows = await db.insert("data_subject_requests", {
        "website_id": website["id"],
        "request_type": body.request_type,
        "requester_email": email,
        "requester_name": sanitize_input(body.requester_name) or None,
        "requester_phone": sanitize_input(body.requester_phone) or None,
        "description": sanitize_input(body.description),
        "additional_info": sanitize_input(body.additional_info) or None,
        "status": "pending",
        "priority": "normal",
        "verification_token": secrets.token_urlsafe(32),
        "created_at": now.isoformat(),
        "due_date": calculate_due_date(now).isoformat(),
    })
    dsar = rows[0]

    await db.insert("dsar_activities", {
        "dsar_id": dsar["id"],
        "performed_by": "requester",
        **activity(
            "created", f"DSAR submitted by {email}", metadata={"request_type": body.request_type},
        ),
    })
    logger.info(f"DSAR {dsar['id']} ({body.request_type}) submitted by {mask_email(email)}")

    return {
        "success": True,
        "message": "Your request has been submitted successfully.",
        "request_id": dsar["id"],
    }


@router.get("/{embed_code}/verify", dependencies=[Depends(rate_limited(RateLimitPresets.STANDARD))])
async def verify_dsar(embed_code: str, request: Request, token: str | None = Query(None)):
    website = await find_website(request, embed_code, columns="id,url")
    if not token:
        raise ValidationError("Verification token is required")

    db = get_db()
    dsar = await db.select_one(
        "data_subject_requests",
        columns="id,website_id,verified_at",
        filters={"verification_token": f"eq.{sanitize_filter_value(token)}"},
    )
    if not dsar:
        raise NotFoundError("Verification token")
    if dsar["website_id"] != website["id"]:
        log_suspicious_activity(
            SecurityEventType.INVALID_TOKEN,
            client_identifier(request.headers),
            request.url.path,
            "DSAR verification token used against another website",
        )
        raise NotFoundError("Verification token")

    if dsar.get("verified_at"):
        return {
            "success": True,
            "message": "Your request has already been verified.",
            "already_verified": True,
        }

    await db.update(
        "data_subject_requests",
        {"verified_at": utcnow().isoformat(), "status": "verified"},
        filters={"id": f"eq.{dsar['id']}"},
    )
    await db.insert("dsar_activities", {
        "dsar_id": dsar["id"],
        "performed_by": "requester",
        **activity("verified", "Email verification completed"),
    })

    return {
        "success": True,
        "message": f"Your request has been verified. We will process it within {DSAR_RESPONSE_DAYS} days.",
    }
