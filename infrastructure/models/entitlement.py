"""
权益数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, String, Boolean, Integer, DateTime, CheckConstraint
from datetime import datetime, timezone

from .base import Base


class EntitlementModel(Base):
    """
    用户权益数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.entitlement.entity.EntitlementState 中
    """
    __tablename__ = "entitlements"
    __table_args__ = (
        CheckConstraint("purchased_slot_count >= 0", name="slot_count_non_negative"),
    )

    user_id = Column(String(64), primary_key=True, comment="用户ID（认证系统的 subject）")

    is_premium = Column(Boolean, nullable=False, default=False, comment="是否已开通 premium")
    premium_granted_at = Column(DateTime(timezone=True), nullable=True, comment="premium 开通时间")
    purchased_slot_count = Column(Integer, nullable=False, default=0, comment="已购买车位数")
    provider_customer_id = Column(String(255), nullable=True, index=True, comment="支付渠道客户ID")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    def __repr__(self):
        return (
            f"<EntitlementModel(user_id='{self.user_id}', is_premium={self.is_premium}, "
            f"purchased_slot_count={self.purchased_slot_count})>"
        )
