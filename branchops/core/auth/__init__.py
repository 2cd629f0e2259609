from .models import Principal
from .provider import get_auth_provider
from .rbac import current_principal, require_roles

__all__ = ["Principal", "current_principal", "get_auth_provider", "require_roles"]
