"""Domain exceptions shared by services.

Services raise these; API endpoints translate them to HTTP responses via
``http_status`` so handlers stay thin.
"""

from __future__ import annotations


class BranchOpsError(Exception):
    http_status = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BranchOpsError):
    http_status = 400


class NotFoundError(BranchOpsError):
    http_status = 404


class ConflictError(BranchOpsError):
    http_status = 409


class PermissionDenied(BranchOpsError):
    http_status = 403


class AuthenticationFailed(BranchOpsError):
    http_status = 401
