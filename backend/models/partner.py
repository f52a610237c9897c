"""
Partner model - business entity that tasks may belong to
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from backend.database import Base
from enum import Enum


class Platform(str, Enum):
    WHMCS = "WHMCS"
    BROKER_PANEL = "BROKER_PANEL"
    PARTNER_PORTAL = "PARTNER_PORTAL"


class PartnerType(str, Enum):
    BROKER = "BROKER"
    AFFILIATE = "AFFILIATE"
    EA = "EA"
    OTHER = "OTHER"


class ConfigType(str, Enum):
    LOCKED_DOWN = "LOCKED_DOWN"
    STANDARD = "STANDARD"
    CUSTOM = "CUSTOM"


class PartnerStatus(str, Enum):
    PRE_SALES = "PRE_SALES"
    IN_PROGRESS = "IN_PROGRESS"
    LIVE = "LIVE"
    INACTIVE = "INACTIVE"


PLATFORM_LABELS = {
    Platform.WHMCS: "WHMCS",
    Platform.BROKER_PANEL: "Broker Panel",
    Platform.PARTNER_PORTAL: "Partner Portal",
}

PARTNER_TYPE_LABELS = {
    PartnerType.BROKER: "Broker",
    PartnerType.AFFILIATE: "Affiliate",
    PartnerType.EA: "EA",
    PartnerType.OTHER: "Other",
}

CONFIG_TYPE_LABELS = {
    ConfigType.LOCKED_DOWN: "Locked-down",
    ConfigType.STANDARD: "Standard",
    ConfigType.CUSTOM: "Custom",
}

PARTNER_STATUS_LABELS = {
    PartnerStatus.PRE_SALES: "Pre-sales",
    PartnerStatus.IN_PROGRESS: "In-Progress",
    PartnerStatus.LIVE: "LIVE",
    PartnerStatus.INACTIVE: "Inactive",
}

# Display order for status groupings: LIVE first
STATUS_ORDER = [
    PartnerStatus.LIVE,
    PartnerStatus.IN_PROGRESS,
    PartnerStatus.PRE_SALES,
    PartnerStatus.INACTIVE,
]


class Partner(Base):
    """A broker, affiliate or other B2B partner"""
    __tablename__ = "partners"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)
    # Generated once on create (or preserved from an import), never regenerated
    upload_key = Column(String(32), unique=True, nullable=False, index=True)
    date_added = Column(DateTime, default=datetime.utcnow)

    # Classification
    platform = Column(SQLEnum(Platform, native_enum=False), nullable=True)
    partner_type = Column(SQLEnum(PartnerType, native_enum=False), nullable=True)
    config = Column(SQLEnum(ConfigType, native_enum=False), nullable=True)
    partner_status = Column(
        SQLEnum(PartnerStatus, native_enum=False),
        nullable=False,
        default=PartnerStatus.PRE_SALES,
    )
    has_landing_page = Column(Boolean, nullable=False, default=False)

    # Contact
    support_channel = Column(String, nullable=True)
    contact_name = Column(String, nullable=True)
    contact_email = Column(String, nullable=True)

    # Percentage, affiliates only
    commission = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tasks = relationship("Task", back_populates="partner", passive_deletes="all")
