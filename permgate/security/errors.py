"""
Error taxonomy for the authorization engine.

A denied check is a normal ``False`` / ``has_access=False`` outcome. These
exceptions cover the cases a caller must handle differently:

- ``Unauthenticated``: no principal was presented (401-class).
- ``PermissionDenied`` / ``DataAccessDenied``: raised only by the
  ``require_*`` helpers so the HTTP layer can build a 403 response.
- ``StoreUnavailable``: the grant/catalog store could not be read. Callers
  MUST fail closed, but log it as an operational incident.
- ``ScopeNotImplemented`` / ``InvalidScopeCondition``: a data scope cannot be
  applied to a query; never degraded to a narrower scope silently.
"""

from __future__ import annotations

from collections.abc import Iterable


class AuthorizationError(Exception):
    """Base class for all engine errors."""


class Unauthenticated(AuthorizationError):
    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class PermissionDenied(AuthorizationError):
    """Principal is known but lacks a required permission or role."""

    def __init__(
        self,
        principal: object,
        required: Iterable[str],
        granted: Iterable[str] = (),
        *,
        require_all: bool = True,
    ) -> None:
        self.principal = principal
        self.required = tuple(required)
        self.granted = tuple(sorted(granted))
        self.require_all = require_all
        super().__init__(f"principal {principal!r} lacks {'all of' if require_all else 'any of'} {list(self.required)}")


class DataAccessDenied(PermissionDenied):
    """Resource/action check failed during a data-access check."""

    def __init__(self, principal: object, resource: str, action: str, granted: Iterable[str] = ()) -> None:
        self.resource = resource
        self.action = action
        super().__init__(principal, [f"{resource}.{action}"], granted)


class StoreUnavailable(AuthorizationError):
    """The grant or catalog store could not be read."""


class ScopeNotImplemented(AuthorizationError):
    """A data scope cannot be enforced for this model or principal."""


class InvalidScopeCondition(AuthorizationError, ValueError):
    """A custom scope condition references a field that is not allowed."""
