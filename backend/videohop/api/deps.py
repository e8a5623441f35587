"""FastAPI dependencies resolving the services built in the app lifespan"""
from fastapi import Request

from videohop.services.session_context import SessionContext
from videohop.services.token_service import TokenLifecycleManager
from videohop.services.upload.orchestrator import UploadOrchestrator


def get_orchestrator(request: Request) -> UploadOrchestrator:
    return request.app.state.orchestrator


def get_session(request: Request) -> SessionContext:
    return request.app.state.session


def get_token_manager(request: Request) -> TokenLifecycleManager:
    return request.app.state.tokens
