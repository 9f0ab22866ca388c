"""
Dependency injection for FastAPI routes.

Services are built once in the application lifespan and kept on `app.state`.
Tests replace them with:
    app.dependency_overrides[get_case_service] = lambda: service
"""

from fastapi import Request

from casechat.services.case_service import CaseService


def get_case_service(request: Request) -> CaseService:
    """Provide the process-wide CaseService."""
    return request.app.state.case_service
