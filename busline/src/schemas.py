from pydantic import BaseModel

from busline.src.enums import AccountRole


class RequestInfo(BaseModel):
    method: str
    path: str
    app_id: int


class Principal(BaseModel):
    """Verified identity of the caller, resolved from a bearer token."""

    account_id: int
    role: AccountRole


class HealthStatus(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
