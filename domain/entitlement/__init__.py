from .entity import EntitlementState
from .repository import EntitlementRepository

__all__ = ["EntitlementState", "EntitlementRepository"]
