import enum
from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.sql import func

from fabricpos.database import Base


class SettingType(str, enum.Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"
    JSON = "json"


class Setting(Base):
    __tablename__ = "settings"
    __table_args__ = (UniqueConstraint("organization_id", "key", name="uq_setting_org_key"),)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    key = Column(String, index=True, nullable=False)  # whatsapp.enabled, business.tax_rate
    value = Column(Text, nullable=True)
    type = Column(Enum(SettingType, values_callable=lambda e: [m.value for m in e]), default=SettingType.STRING)
    category = Column(String, index=True, default="general")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
