"""
Shared module for common utilities across the REST API and WS Gateway.

- shared.security: staff JWT verification, role/tenant guards, webhook signatures
- shared.infrastructure: SQLAlchemy sessions, Redis pub/sub broadcaster,
  TTL cache, transient DB error retry
- shared.config: settings (pydantic-settings), structured logging, constants
- shared.utils: HTTP exceptions with auto-logging, money arithmetic,
  Pydantic schemas, health check helpers

IMPORT EXAMPLES:
    from shared.security.auth import current_staff_context, require_roles
    from shared.infrastructure.db import get_db_context, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import Roles, OrderStatus
    from shared.utils.exceptions import NotFoundError, StateConflictError
"""
