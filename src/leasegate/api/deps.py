"""API dependencies."""

import logging

from fastapi import HTTPException, Request

from leasegate.engine.errors import (
    ChainError,
    ContainerRuntimeError,
    DeploymentFailed,
    EscrowError,
    InvalidStateTransition,
    LeaseGateError,
    NotFoundError,
    ValidationError,
)
from leasegate.engine.market import MarketGateway
from leasegate.engine.orchestrator import Orchestrator

logger = logging.getLogger("leasegate.api")


def get_orchestrator(request: Request) -> Orchestrator:
    """Return the orchestrator created by the application lifespan."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator is not running")
    return orchestrator


def get_market(request: Request) -> MarketGateway:
    """Return the ledger-backed market of the running orchestrator."""
    market = get_orchestrator(request).market
    if not isinstance(market, MarketGateway):
        raise HTTPException(status_code=503, detail="Market is not backed by the ledger")
    return market


def http_error(error: LeaseGateError) -> HTTPException:
    """Map an engine error to an HTTP error response."""
    detail = {"code": error.code, "message": error.message}

    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=detail)
    if isinstance(error, InvalidStateTransition):
        return HTTPException(status_code=409, detail=detail)
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=detail)
    if isinstance(error, (ChainError, EscrowError)):
        if error.indeterminate:
            detail["indeterminate"] = True
            return HTTPException(status_code=504, detail=detail)
        return HTTPException(status_code=502, detail=detail)
    if isinstance(error, (ContainerRuntimeError, DeploymentFailed)):
        return HTTPException(status_code=502, detail=detail)

    logger.error(f"Unmapped engine error: {error.code}: {error.message}")
    return HTTPException(status_code=500, detail=detail)
