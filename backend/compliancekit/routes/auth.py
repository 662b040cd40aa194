import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, EmailStr, Field

from compliancekit.auth import create_token, hash_password, require_admin, require_user, validate_password, verify_password
from compliancekit.database import get_db
from compliancekit.exceptions import ConflictError, RateLimitError, UnauthorizedError, ValidationError
from compliancekit.login_guard import LoginGuard, LockStatus, get_login_guard
from compliancekit.rate_limit import RateLimitPresets, client_identifier, rate_limited
from compliancekit.security_log import SecurityEventType, log_auth_event
from compliancekit.utils import mask_email, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter()


def _minutes(seconds: int) -> int:
    return max(1, math.ceil(seconds / 60))


def _locked_error(lock: LockStatus) -> RateLimitError:
    return RateLimitError(
        f"Account temporarily locked due to too many failed attempts. "
        f"Try again in {_minutes(lock.remaining_seconds)} minutes.",
        headers={"Retry-After": str(lock.remaining_seconds)},
        retry_after=lock.remaining_seconds,
    )


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    remember_me: bool = False


class SignUpRequest(BaseModel):
    name: str = Field(min_length=2)
    email: EmailStr
    password: str
    confirm_password: str


@router.post("/login", dependencies=[Depends(rate_limited(RateLimitPresets.STRICT))])
async def login(body: LoginRequest, request: Request, guard: LoginGuard = Depends(get_login_guard)):
    email = body.email.lower()
    ip = client_identifier(request.headers)
    user_agent = request.headers.get("user-agent")

    lock = guard.is_locked(email, ip)
    if lock.locked:
        log_auth_event(SecurityEventType.LOGIN_LOCKED, email, ip, user_agent, False,
                       {"remaining_seconds": lock.remaining_seconds})
        raise _locked_error(lock)

    db = get_db()
    user = await db.select_one("users", filters={"email": f"eq.{email}"})
    if not user or not user.get("password_hash") or not verify_password(body.password, user["password_hash"]):
        failure = guard.record_failure(email, ip)
        if failure.locked:
            log_auth_event(SecurityEventType.LOGIN_LOCKED, email, ip, user_agent, False,
                           {"remaining_seconds": failure.remaining_seconds})
            raise _locked_error(failure)
        log_auth_event(SecurityEventType.LOGIN_FAILED, email, ip, user_agent, False,
                       {"attempts_remaining": failure.attempts_remaining})
        raise UnauthorizedError(f"Invalid credentials. {failure.attempts_remaining} attempts remaining.")

    guard.record_success(email, ip)
    log_auth_event(SecurityEventType.LOGIN_SUCCESS, email, ip, user_agent, True)

    await db.update("users", {"last_login_at": utcnow().isoformat()}, filters={"id": f"eq.{user['id']}"})

    token = create_token(
        sub=user["email"],
        extra={"user_id": user["id"], "name": user.get("name"), "role": user.get("role", "user")},
        remember_me=body.remember_me,
    )
    return {"token": token, "email": user["email"], "name": user.get("name")}


@router.post("/signup", dependencies=[Depends(rate_limited(RateLimitPresets.STRICT))])
async def signup(body: SignUpRequest, request: Request):
    if body.password != body.confirm_password:
        raise ValidationError("Passwords don't match")
    valid, msg = validate_password(body.password)
    if not valid:
        raise ValidationError(msg)

    email = body.email.lower()
    db = get_db()
    if await db.select_one("users", filters={"email": f"eq.{email}"}):
        raise ConflictError("Email already in use")

    rows = await db.insert("users", {
        "name": body.name.strip(),
        "email": email,
        "password_hash": hash_password(body.password),
    })
    user = rows[0]
    logger.info(f"New account created for {mask_email(email)}")
    log_auth_event(SecurityEventType.SIGNUP, email, client_identifier(request.headers),
                   request.headers.get("user-agent"), True)

    token = create_token(sub=email, extra={"user_id": user["id"], "name": user.get("name"), "role": "user"})
    return {"token": token, "email": email, "name": user.get("name")}


@router.get("/me")
async def me(payload: dict = Depends(require_user)):
    return {
        "id": payload["user_id"],
        "email": payload["sub"],
        "name": payload.get("name"),
        "role": payload.get("role", "user"),
    }


# --- Lockout administration ---

class UnlockRequest(BaseModel):
    email: EmailStr
    ip_address: str


@admin_router.get("/lockouts")
async def list_lockouts(guard: LoginGuard = Depends(get_login_guard), _=Depends(require_admin)):
    return {"lockouts": guard.active_lockouts()}


@admin_router.post("/unlock")
async def unlock_account(body: UnlockRequest, guard: LoginGuard = Depends(get_login_guard), payload: dict = Depends(require_admin)):
    if guard.attempt_info(body.email, body.ip_address) is None:
        raise HTTPException(status_code=404, detail="No login attempts recorded for this account")
    guard.unlock(body.email, body.ip_address)
    logger.info(f"{mask_email(payload['sub'])} unlocked {mask_email(body.email)} from {body.ip_address}")
    return {"ok": True}
