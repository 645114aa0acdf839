from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from .config import JWT_ALGORITHM, JWT_SECRET
from .errors import UnauthorizedError
from .rbac import is_admin

if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is not set")

bearer_scheme = HTTPBearer(auto_error=False, description="Token issued by the auth service")


def _unauthenticated(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_principal(token: str) -> dict:
    """
    Claims of a valid token. Store staff carry `store_id`, customers `email`,
    platform admins the `admin` role. Every principal needs a `sub`.
    """
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise _unauthenticated("Token expired")
    except JWTError:
        raise _unauthenticated("Invalid token")

    if not claims.get("sub"):
        raise _unauthenticated("Token has no subject")
    return claims


def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    if creds is None or creds.scheme.lower() != "bearer" or not creds.credentials:
        raise _unauthenticated("Missing Bearer token")

    principal = decode_principal(creds.credentials)

    # picked up by the access log
    request.state.user_sub = principal.get("sub")
    request.state.user_roles = principal.get("roles")
    return principal


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if not is_admin(user):
        raise UnauthorizedError("Admin role required")
    return user
