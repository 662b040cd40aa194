"""Public endpoints called by the consent banner embedded on customer websites."""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from compliancekit.database import get_db
from compliancekit.exceptions import NotFoundError
from compliancekit.rate_limit import RateLimitPresets, client_identifier, rate_limited
from compliancekit.sanitize import sanitize_filter_value

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_BANNER_CONFIG = {
    "theme": "light",
    "position": "bottom",
    "primary_color": "#0f172a",
    "text_color": "#ffffff",
    "button_style": "rounded",
    "animation": "slide",
    "custom_css": None,
}


async def find_website(request: Request, embed_code: str, columns: str = "*") -> dict:
    """Look up a website by embed code and remember its URL for the CORS policy."""
    db = get_db()
    website = await db.select_one(
        "websites",
        columns=columns,
        filters={"embed_code": f"eq.{sanitize_filter_value(embed_code)}"},
    )
    if not website:
        raise NotFoundError("Website")
    request.state.website_url = website.get("url")
    return website


class ConsentRequest(BaseModel):
    visitor_id: str = Field(min_length=1, max_length=128, pattern=r"^[A-Za-z0-9_-]+$")
    preferences: dict[str, Any]


@router.options("/{embed_code}/config")
@router.options("/{embed_code}/consent")
async def widget_preflight(embed_code: str, request: Request):
    await find_website(request, embed_code, columns="id,url")
    return Response(status_code=204)


@router.get("/{embed_code}/config", dependencies=[Depends(rate_limited(RateLimitPresets.LENIENT))])
async def widget_config(embed_code: str, request: Request):
    website = await find_website(request, embed_code, columns="id,url")
    db = get_db()
    banner = await db.select_one("banner_configs", filters={"website_id": f"eq.{website['id']}"})
    config = {key: (banner or {}).get(key, default) for key, default in DEFAULT_BANNER_CONFIG.items()}
    return {"website_id": website["id"], "config": config}


@router.post("/{embed_code}/consent", dependencies=[Depends(rate_limited(RateLimitPresets.PUBLIC_FORM))])
async def record_consent(embed_code: str, body: ConsentRequest, request: Request):
    website = await find_website(request, embed_code, columns="id,url")
    db = get_db()

    visitor_id = body.visitor_id
    data = {
        "preferences": body.preferences,
        "ip_address": client_identifier(request.headers),
        "user_agent": request.headers.get("user-agent", "unknown"),
    }
    filters = {
        "website_id": f"eq.{website['id']}",
        "visitor_id": f"eq.{visitor_id}",
    }
    existing = await db.select_one("consents", columns="id", filters=filters)
    if existing:
        await db.update("consents", data, filters={"id": f"eq.{existing['id']}"})
    else:
        await db.insert("consents", {"website_id": website["id"], "visitor_id": visitor_id, **data})

    return {"success": True}
