from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dashboard_api.core.errors import Unauthenticated
from dashboard_api.core.security import verify_token

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Principal:
    """Caller identity taken from a verified identity-provider token"""

    uid: str
    email: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)


def principal_from_token(token: Optional[str]) -> Optional[Principal]:
    if not token:
        return None

    payload = verify_token(token)
    if not payload or not payload.get("sub"):
        return None

    return Principal(uid=str(payload["sub"]), email=payload.get("email"), claims=payload)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    principal = principal_from_token(credentials.credentials if credentials else None)

    if principal is None:
        raise Unauthenticated("Could not validate credentials")

    return principal
