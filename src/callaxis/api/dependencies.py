"""
FastAPI dependencies.
"""

from typing import Annotated

from fastapi import Depends, Header, Request

from callaxis.api.container import ServiceContainer
from callaxis.shared.exceptions import ValidationError
from callaxis.telephony.interface import TenantContext


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_tenant(
    x_company_id: Annotated[str, Header(min_length=1)],
    authorization: Annotated[str | None, Header()] = None,
) -> TenantContext:
    """Tenant context from the caller's headers.

    The bearer token is forwarded as is to the telephony proxy.
    """
    token = ""
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() != "bearer" or not value.strip():
            raise ValidationError("Authorization header must be a bearer token")
        token = value.strip()
    return TenantContext(company_id=x_company_id, access_token=token)


def get_employee_id(x_employee_id: Annotated[str | None, Header()] = None) -> str | None:
    return x_employee_id or None


Container = Annotated[ServiceContainer, Depends(get_container)]
Tenant = Annotated[TenantContext, Depends(get_tenant)]
EmployeeId = Annotated[str | None, Depends(get_employee_id)]
