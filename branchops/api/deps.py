"""Shared endpoint dependencies and the domain error -> HTTP translation."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException
from pydantic import ValidationError as PydanticValidationError

from branchops.core.ai.gateway import AIGatewayService
from branchops.core.ai.models import AIGatewayNotConfiguredError, AIOutputValidationError, AIUpstreamError
from branchops.core.auth.rbac import current_principal, require_roles  # noqa: F401
from branchops.core.db.session import get_db  # noqa: F401
from branchops.core.errors import BranchOpsError


def get_ai_gateway() -> AIGatewayService:
    return AIGatewayService()


@contextmanager
def service_errors() -> Iterator[None]:
    """Translate domain and AI exceptions raised inside the block into HTTPException."""
    try:
        yield
    except BranchOpsError as exc:
        raise HTTPException(status_code=exc.http_status, detail=exc.message) from exc
    except PydanticValidationError as exc:
        # documents validated inside services (recipes, dispatch bodies, branches)
        raise HTTPException(
            status_code=400,
            detail=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc
    except AIGatewayNotConfiguredError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except AIOutputValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "code": "ai_output_validation_failed",
                "validation_error": exc.validation_error,
            },
        ) from exc
    except AIUpstreamError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
