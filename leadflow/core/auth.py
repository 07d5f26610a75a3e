from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.requests import Request

from leadflow.core.config import get_settings


@dataclass
class AuthUser:
    sub: str
    roles: list[str]
    name: str | None = None
    role: str | None = None
    department: str | None = None


ANONYMOUS = "anonymous"


def _extract_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.replace("Bearer ", "", 1).strip()
    return request.cookies.get(get_settings().auth_cookie_name, "")


async def get_current_user(request: Request) -> AuthUser:
    token = _extract_token(request)
    if not token:
        return AuthUser(sub=ANONYMOUS, roles=["guest"])

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return AuthUser(sub=ANONYMOUS, roles=["guest"])

    roles = payload.get("roles", [])
    if not isinstance(roles, list):
        roles = []
    name = payload.get("name")
    role = payload.get("role")
    department = payload.get("department")
    return AuthUser(
        sub=str(payload.get("sub", ANONYMOUS)),
        roles=[str(item) for item in roles],
        name=str(name) if name else None,
        role=str(role) if role else None,
        department=str(department) if department else None,
    )
