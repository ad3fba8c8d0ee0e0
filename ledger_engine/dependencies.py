"""
FastAPI dependencies.

The transfer orchestrator must be a single shared instance per process:
its lock registry is what serializes concurrent transfers on the same
account. It is created once in the app lifespan and stored on app.state.
Tests override get_orchestrator to inject one bound to their own database.
"""

from fastapi import Request

from ledger_engine.services.transfer_service import TransferOrchestrator


def get_orchestrator(request: Request) -> TransferOrchestrator:
    return request.app.state.orchestrator
