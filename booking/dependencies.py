"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from booking.container import ServiceContainer
from booking.services.intake_service import IntakeService
from booking.services.query_service import QueryService


def get_container(request: Request) -> ServiceContainer:
    """Container built by the application lifespan."""
    return request.app.state.container


def get_intake_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> IntakeService:
    return container.intake


def get_query_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> QueryService:
    return container.query


# Type aliases for dependency injection
Container = Annotated[ServiceContainer, Depends(get_container)]
IntakeServiceDep = Annotated[IntakeService, Depends(get_intake_service)]
QueryServiceDep = Annotated[QueryService, Depends(get_query_service)]
