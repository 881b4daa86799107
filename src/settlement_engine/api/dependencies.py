"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from settlement_engine.services.settlement_service import SettlementService


def get_settlement_service(request: Request) -> SettlementService:
    """Get the application's settlement service."""
    service = getattr(request.app.state, "settlement_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Settlement service is not initialized",
        )
    return service


# Type aliases for cleaner dependency injection
Service = Annotated[SettlementService, Depends(get_settlement_service)]
