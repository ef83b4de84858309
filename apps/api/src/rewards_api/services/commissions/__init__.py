"""Commission exports."""

from .commission_service import CommissionService  # noqa: F401
