from typing import Optional, List
from datetime import datetime, timezone
from sqlmodel import Field, SQLModel, Relationship, JSON, Column
from enum import Enum

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class Role(str, Enum):
    FARMER = "farmer"
    INSTITUTION = "institution"
    ENUMERATOR = "enumerator" # extension worker
    ADMIN = "admin"

DASHBOARD_ROUTES = {
    Role.FARMER: "/dashboard",
    Role.ENUMERATOR: "/extension-dashboard",
    Role.INSTITUTION: "/institution-dashboard",
    Role.ADMIN: "/admin-dashboard",
}

class ActivityType(str, Enum):
    PLANTING = "Planting"
    FERTILIZER = "Fertilizer"
    PEST = "Pest"
    IRRIGATION = "Irrigation"
    HARVEST = "Harvest"
    OTHER = "Other"

class SyncStatus(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"

class FarmerConfirmation(str, Enum):
    PENDING = "pending" # waiting for the farmer
    ACCEPTED = "accepted"
    EDITED = "edited" # farmer changed the collected entry

class EvidenceKind(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"
    TEXT = "text"

class AccessType(str, Enum):
    VIEW = "view"
    VIEW_DOWNLOAD = "view_download"
    VIEW_DOWNLOAD_ANALYTICS = "view_download_analytics"

class AccessStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"

class ShareTarget(str, Enum):
    INSURER = "insurer"
    BANK = "bank"
    COOPERATIVE = "cooperative"
    GOVERNMENT = "government"

class PermissionType(str, Enum):
    VIEW = "view"
    VIEW_DOWNLOAD = "view_download"

class DataRange(str, Enum):
    FULL = "full"
    CURRENT_SEASON = "current_season"
    LAST_12_MONTHS = "last_12_months"

class AdminLevel(str, Enum):
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    hashed_password: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)

    profile: Optional["Profile"] = Relationship(
        back_populates="user", sa_relationship_kwargs={"uselist": False}
    )
    role_entry: Optional["UserRole"] = Relationship(
        back_populates="user", sa_relationship_kwargs={"uselist": False}
    )

    @property
    def role(self) -> Optional[Role]:
        return self.role_entry.role if self.role_entry else None

class UserRole(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True)
    role: Role = Field(index=True)

    user: User = Relationship(back_populates="role_entry")

class Profile(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True)
    full_name: str
    phone_number: Optional[str] = None
    village_location: Optional[str] = None
    preferred_language: str = Field(default="en")

    user: User = Relationship(back_populates="profile")

class InstitutionProfile(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True)
    organization_name: Optional[str] = None
    institution_type: Optional[str] = None # bank, insurer, NGO, research...
    country_region: Optional[str] = None
    representative_name: Optional[str] = None
    position_role: Optional[str] = None

class AdminProfile(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True)
    role_level: AdminLevel = Field(default=AdminLevel.ADMIN)

class FarmField(SQLModel, table=True):
    __tablename__ = "field"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    name: str
    area_acres: Optional[float] = None
    crop: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

class FarmActivity(SQLModel, table=True):
    __tablename__ = "farm_activity"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True) # the farmer
    activity_type: ActivityType
    activity_date: datetime = Field(default_factory=utcnow, index=True)
    field_id: Optional[int] = Field(default=None, foreign_key="field.id")
    crop: Optional[str] = None
    notes: Optional[str] = None
    inputs_used: Optional[str] = None
    yield_estimate: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    ai_summary: Optional[str] = None
    ai_extracted_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    sync_status: SyncStatus = Field(default=SyncStatus.SYNCED)

    # Extension worker provenance
    is_verified: bool = Field(default=False)
    collected_by: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    farmer_confirmation: Optional[FarmerConfirmation] = None

    client_ref: Optional[str] = Field(default=None, index=True) # offline queue entry id
    created_at: datetime = Field(default_factory=utcnow)

    evidence: List["Evidence"] = Relationship(back_populates="activity")

class Evidence(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    activity_id: int = Field(foreign_key="farm_activity.id", index=True)
    kind: EvidenceKind
    file_name: Optional[str] = None
    file_path: Optional[str] = None
    content_type: Optional[str] = None
    text: Optional[str] = None
    uploaded_by: int = Field(foreign_key="user.id")
    created_at: datetime = Field(default_factory=utcnow)

    activity: FarmActivity = Relationship(back_populates="evidence")

class AccessRequest(SQLModel, table=True):
    __tablename__ = "access_request"

    id: Optional[int] = Field(default=None, primary_key=True)
    institution_id: int = Field(foreign_key="user.id", index=True)
    farmer_id: int = Field(foreign_key="user.id", index=True)
    request_reason: Optional[str] = None
    access_type: AccessType = Field(default=AccessType.VIEW)
    duration_days: int = Field(default=30)
    status: AccessStatus = Field(default=AccessStatus.PENDING, index=True)
    expires_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

class DataPermission(SQLModel, table=True):
    __tablename__ = "data_permission"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    shared_with_email: str
    shared_with_type: ShareTarget = Field(default=ShareTarget.INSURER)
    permission_type: PermissionType = Field(default=PermissionType.VIEW)
    data_range: DataRange = Field(default=DataRange.FULL)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)

class ActivityDraft(SQLModel, table=True):
    __tablename__ = "activity_draft"

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    flow: str # "farmer" or "extension"
    step: str
    data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    actor_id: Optional[int] = Field(default=None, foreign_key="user.id")
    actor_type: Optional[str] = None # role of the actor, "system" for lazy expiry
    action: str
    target_type: Optional[str] = None
    target_id: Optional[int] = None
    details: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)

class SystemSetting(SQLModel, table=True):
    __tablename__ = "system_setting"

    id: Optional[int] = Field(default=None, primary_key=True)
    key: str = Field(index=True, unique=True)
    value: str
