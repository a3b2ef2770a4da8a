"""数据库模型"""
from .base import Base, metadata
from .entitlement import EntitlementModel

__all__ = ["Base", "metadata", "EntitlementModel"]
