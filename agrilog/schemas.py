from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from .models import (
    Role, ActivityType, SyncStatus, FarmerConfirmation, EvidenceKind,
    AccessType, AccessStatus, ShareTarget, PermissionType, DataRange, AdminLevel,
)

class ReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

class Token(BaseModel):
    access_token: str
    token_type: str
    role: Optional[Role] = None
    dashboard: Optional[str] = None

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=2, max_length=100)
    phone_number: str = Field(min_length=10, max_length=20)
    village_location: Optional[str] = None
    preferred_language: str = "en"
    role: Role
    # Institutions only
    organization_name: Optional[str] = None

class AdminUserCreate(UserCreate):
    role_level: AdminLevel = AdminLevel.ADMIN

class ProfileRead(ReadModel):
    full_name: str
    phone_number: Optional[str] = None
    village_location: Optional[str] = None
    preferred_language: str = "en"

class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone_number: Optional[str] = Field(default=None, min_length=10, max_length=20)
    village_location: Optional[str] = None
    preferred_language: Optional[str] = None

class UserRead(ReadModel):
    id: int
    email: str
    is_active: bool
    role: Optional[Role] = None
    dashboard: Optional[str] = None
    profile: Optional[ProfileRead] = None

class InstitutionProfileUpdate(BaseModel):
    organization_name: Optional[str] = None
    institution_type: Optional[str] = None
    country_region: Optional[str] = None
    representative_name: Optional[str] = None
    position_role: Optional[str] = None

class InstitutionProfileRead(InstitutionProfileUpdate):
    model_config = ConfigDict(from_attributes=True)

    user_id: int

class FieldCreate(BaseModel):
    name: str = Field(min_length=1)
    area_acres: Optional[float] = Field(default=None, ge=0)
    crop: Optional[str] = None

class FieldRead(FieldCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    created_at: datetime

class Coordinates(BaseModel):
    location_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    location_lng: Optional[float] = Field(default=None, ge=-180, le=180)

    @model_validator(mode="after")
    def both_or_neither(self):
        if (self.location_lat is None) != (self.location_lng is None):
            raise ValueError("location_lat and location_lng must be given together")
        return self

class ActivityCreate(Coordinates):
    activity_type: ActivityType
    activity_date: Optional[datetime] = None
    field_id: Optional[int] = None
    crop: Optional[str] = None
    notes: Optional[str] = None
    inputs_used: Optional[str] = None
    yield_estimate: Optional[str] = None
    ai_summary: Optional[str] = None
    ai_extracted_data: Optional[Dict[str, Any]] = None
    sync_status: SyncStatus = SyncStatus.SYNCED

    # Evidence context for the AI summary, not stored on the row
    text_notes: Optional[str] = None
    photo_count: int = Field(default=0, ge=0)
    video_count: int = Field(default=0, ge=0)
    audio_count: int = Field(default=0, ge=0)

class ActivityUpdate(Coordinates):
    activity_date: Optional[datetime] = None
    field_id: Optional[int] = None
    crop: Optional[str] = None
    notes: Optional[str] = None
    inputs_used: Optional[str] = None
    yield_estimate: Optional[str] = None

class ActivityRead(ReadModel):
    id: int
    user_id: int
    activity_type: ActivityType
    activity_date: datetime
    field_id: Optional[int] = None
    crop: Optional[str] = None
    notes: Optional[str] = None
    inputs_used: Optional[str] = None
    yield_estimate: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    ai_summary: Optional[str] = None
    ai_extracted_data: Optional[Dict[str, Any]] = None
    sync_status: SyncStatus
    is_verified: bool
    collected_by: Optional[int] = None
    farmer_confirmation: Optional[FarmerConfirmation] = None
    created_at: datetime

class EvidenceRead(ReadModel):
    id: int
    activity_id: int
    kind: EvidenceKind
    file_name: Optional[str] = None
    content_type: Optional[str] = None
    text: Optional[str] = None
    uploaded_by: int
    created_at: datetime

class FarmerDashboard(ReadModel):
    recent_activities: List[ActivityRead]
    pending_sync: int

class SeasonSummary(BaseModel):
    total: int
    by_type: Dict[str, int]
    by_crop: Dict[str, int]
    by_month: Dict[str, int]
    pest_alert: int

class PermissionCreate(BaseModel):
    shared_with_email: EmailStr
    shared_with_type: ShareTarget = ShareTarget.INSURER
    permission_type: PermissionType = PermissionType.VIEW
    data_range: DataRange = DataRange.FULL

class PermissionRead(PermissionCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    is_active: bool
    created_at: datetime

class AccessRequestCreate(BaseModel):
    farmer_id: int
    request_reason: Optional[str] = None
    access_type: AccessType = AccessType.VIEW
    duration_days: Optional[int] = Field(default=None, ge=1, le=365)

class AccessRequestRead(ReadModel):
    id: int
    institution_id: int
    farmer_id: int
    farmer_name: Optional[str] = None
    institution_name: Optional[str] = None
    request_reason: Optional[str] = None
    access_type: AccessType
    duration_days: int
    status: AccessStatus
    expires_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    created_at: datetime

class ApprovedFarmer(ReadModel):
    request_id: int
    farmer_id: int
    full_name: str
    village_location: Optional[str] = None
    access_type: AccessType
    expires_at: Optional[datetime] = None
    days_remaining: Optional[int] = None

class FarmerSearchResult(ReadModel):
    id: int
    full_name: str
    village_location: Optional[str] = None
    has_permission: bool
    request_status: Optional[AccessStatus] = None
    total_entries: int
    verified_entries: int

class FarmProfile(ReadModel):
    farmer_id: int
    full_name: str
    village_location: Optional[str] = None
    expires_at: Optional[datetime] = None
    crop_count: int
    ai_processed: int
    activities: List[ActivityRead]

class RosterEntry(ReadModel):
    id: int
    full_name: str
    village_location: Optional[str] = None
    phone_number: Optional[str] = None
    total_entries: int
    verified_entries: int

class Submission(ReadModel):
    id: int
    farmer_id: int
    farmer_name: str
    activity_type: ActivityType
    activity_date: datetime
    sync_status: SyncStatus
    farmer_confirmation: Optional[FarmerConfirmation] = None

class DraftRead(ReadModel):
    id: int
    flow: str
    step: str
    steps: List[str]
    data: Dict[str, Any]

class QueuedEntry(BaseModel):
    id: str
    data: Dict[str, Any]
    timestamp: Optional[str] = None

class SyncRequest(BaseModel):
    entries: List[QueuedEntry]

class SyncFailure(BaseModel):
    id: str
    error: str

class SyncResult(BaseModel):
    synced: List[str] = []
    failed: List[SyncFailure] = []

class ActivityContextIn(BaseModel):
    context: Dict[str, Any] = {}

class ActivitySummaryOut(BaseModel):
    summary: str
    extractedData: Dict[str, Any] = {}
    error: Optional[str] = None

class SettingsUpdate(BaseModel):
    auto_confirm_signups: Optional[bool] = None
    require_admin_2fa: Optional[bool] = None
    default_access_duration_days: Optional[int] = Field(default=None, ge=1, le=365)

class AuditLogRead(ReadModel):
    id: int
    actor_id: Optional[int] = None
    actor_type: Optional[str] = None
    action: str
    target_type: Optional[str] = None
    target_id: Optional[int] = None
    details: Optional[str] = None
    created_at: datetime
