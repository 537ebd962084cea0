from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from haulage.core.security import ROLES, decode_token
from haulage.services.maps_client import MapsClient, maps_client
from haulage.services.razorpay_client import RazorpayClient, razorpay_client
from haulage.services.relay import CeleryRelay, Relay

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    id: str
    role: str


def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> Principal:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    sub, role = payload.get("sub"), payload.get("role")
    if payload.get("type") != "access" or not sub or role not in ROLES:
        raise HTTPException(status_code=401, detail="Invalid token")
    return Principal(id=sub, role=role)


def require_roles(*roles: str):
    def _guard(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return principal
    return _guard


# Collaborators. Tests swap these through app.dependency_overrides.

def get_maps() -> MapsClient:
    return maps_client()


def get_gateway() -> RazorpayClient:
    return razorpay_client()


def get_relay() -> Relay:
    return CeleryRelay()
