"""Bearer-token organisation context for FastAPI.

Tokens are HS256 JWTs minted by the account service. They carry the
caller (``sub``), the active organisation (``organisation_id``) and the
caller's role in that organisation (``org_role``).
"""

from dataclasses import dataclass

import jwt as pyjwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings

_bearer_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLES = frozenset({"owner", "admin"})


@dataclass(frozen=True)
class OrgUser:
    """Authenticated caller scoped to their active organisation."""

    user_id: str
    organisation_id: str
    role: str
    claims: dict

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def decode_access_token(token: str) -> dict:
    """Verify and decode an access token.

    Raises ``HTTPException(401)`` on any validation failure.
    """
    settings = get_settings()
    if not settings.auth_jwt_secret:
        raise HTTPException(status_code=500, detail="Authentication is misconfigured")

    options = {
        "verify_exp": True,
        "require": ["sub", "exp"],
    }
    kwargs = {}
    if settings.auth_jwt_audience:
        kwargs["audience"] = settings.auth_jwt_audience
    else:
        options["verify_aud"] = False

    try:
        return pyjwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=["HS256"],
            options=options,
            **kwargs,
        )
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.MissingRequiredClaimError as exc:
        raise HTTPException(status_code=401, detail=f"Missing required claim: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")


async def require_org_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> OrgUser:
    """FastAPI dependency: authenticated caller with an active organisation.

    Usage::

        @router.get("/billing")
        async def overview(user: OrgUser = Depends(require_org_user)):
            ...
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    claims = decode_access_token(credentials.credentials)

    user_id = str(claims.get("sub") or "")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token missing sub claim")

    organisation_id = str(claims.get("organisation_id") or "").strip()
    if not organisation_id:
        raise HTTPException(status_code=403, detail="No active organisation")

    # Set on request state for downstream use (error handlers, audit logging)
    request.state.user_id = user_id
    request.state.organisation_id = organisation_id

    return OrgUser(
        user_id=user_id,
        organisation_id=organisation_id,
        role=str(claims.get("org_role") or "member"),
        claims=claims,
    )


async def require_org_admin(user: OrgUser = Depends(require_org_user)) -> OrgUser:
    """FastAPI dependency that additionally requires an owner/admin role."""
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Organisation admin access required")
    return user
