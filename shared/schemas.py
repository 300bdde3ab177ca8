"""Pydantic schemas for validation and serialization."""
from datetime import date, datetime
from typing import Optional, List, Any, Dict
import re
from pydantic import BaseModel, Field, StrictBool, field_validator, model_validator, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from shared.enums import (
    UserRole, ProjectRole, VersionEntityType, NoteLinkType, ShotType, AssetType, StatusApplicability,
    NotificationType
)
from shared.validation import Validator, ValidationError

CODE_MIN_LENGTH = 2
CODE_MAX_LENGTH = 50
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 5000
NOTE_CONTENT_MAX_LENGTH = 10000
FRAME_RANGE_PATTERN = re.compile(r'^\d+-\d+$')

INPUT_CONFIG = ConfigDict(extra='forbid', use_enum_values=True)
OUTPUT_CONFIG = ConfigDict(use_enum_values=True, from_attributes=True)


def parse_payload(schema, data, partial=False):
    """Validate request data against a schema and return a plain dict.

    Pydantic errors are flattened into a single ValidationError message of
    the form "field: message; field: message".

    Args:
        schema: Pydantic model class
        data: Raw request dict
        partial: When True only fields explicitly present in data are returned (updates)
    """
    try:
        validated = schema(**data)
    except PydanticValidationError as e:
        errors = []
        for error in e.errors():
            field = '.'.join(str(x) for x in error['loc']) or 'body'
            errors.append(f"{field}: {error['msg']}")
        raise ValidationError('; '.join(errors))
    except TypeError:
        raise ValidationError('Request data must be a JSON object')
    if partial:
        return validated.model_dump(exclude_unset=True, exclude_none=True)
    return validated.model_dump(exclude_none=True)


def check_code(v, field='code'):
    if v is None:
        return v
    return Validator.validate_safe_identifier(v, field, CODE_MIN_LENGTH, CODE_MAX_LENGTH)


def check_name(v, field='name'):
    if v is None:
        return v
    return Validator.validate_safe_identifier(v, field, NAME_MIN_LENGTH, NAME_MAX_LENGTH)


def check_text(v, field='description'):
    return Validator.validate_safe_text(v, field, DESCRIPTION_MAX_LENGTH)


class StatusRefMixin(BaseModel):
    """Entities accept either a status id or a status code."""
    status: Optional[str] = Field(None, max_length=50)
    status_id: Optional[str] = Field(None, max_length=36)
    assigned_to: Optional[int] = Field(None, ge=1, strict=True)

    @field_validator('status')
    @classmethod
    def validate_status_code(cls, v):
        return check_code(v, 'status')


# Status Schemas
class StatusCreate(BaseModel):
    code: str
    name: str
    description: Optional[str] = None
    color: str = '#808080'
    is_active: StrictBool = True
    sort_order: int = Field(default=0, ge=0, le=10000, strict=True)
    applicable_entities: List[StatusApplicability] = Field(default_factory=lambda: [StatusApplicability.ALL.value])

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return check_code(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return Validator.validate_safe_identifier(v, 'name', 2, 100)

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return check_text(v)

    @field_validator('color')
    @classmethod
    def validate_color(cls, v):
        return Validator.validate_hex_color(v)

    model_config = INPUT_CONFIG


class StatusUpdate(BaseModel):
    code: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    is_active: Optional[StrictBool] = None
    sort_order: Optional[int] = Field(None, ge=0, le=10000, strict=True)
    applicable_entities: Optional[List[StatusApplicability]] = None

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return check_code(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if v is None:
            return v
        return Validator.validate_safe_identifier(v, 'name', 2, 100)

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return check_text(v)

    @field_validator('color')
    @classmethod
    def validate_color(cls, v):
        if v is None:
            return v
        return Validator.validate_hex_color(v)

    model_config = INPUT_CONFIG


class StatusResponse(BaseModel):
    id: str
    code: str
    name: str
    description: Optional[str] = None
    color: str
    is_active: bool
    sort_order: int
    applicable_entities: List[str] = []
    created_at: datetime
    updated_at: datetime

    model_config = OUTPUT_CONFIG


# Project Schemas
class ProjectCreate(StatusRefMixin):
    code: str
    name: str
    description: Optional[str] = None
    client_name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return check_code(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return check_name(v)

    @field_validator('client_name')
    @classmethod
    def validate_client_name(cls, v):
        if v is None:
            return v
        return Validator.validate_safe_identifier(v, 'client_name', 1, 255)

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return check_text(v)

    @model_validator(mode='after')
    def check_date_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError('end_date must not be before start_date')
        return self

    model_config = INPUT_CONFIG


class ProjectUpdate(ProjectCreate):
    code: Optional[str] = None
    name: Optional[str] = None


class ProjectResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    client_name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status_id: Optional[str] = None
    created_by: Optional[int] = None
    assigned_to: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = OUTPUT_CONFIG


class PermissionGrant(BaseModel):
    user_id: int = Field(..., ge=1, strict=True)
    role: ProjectRole

    model_config = INPUT_CONFIG


# Episode Schemas
class EpisodeCreate(StatusRefMixin):
    code: str
    name: str
    project_id: int = Field(..., ge=1, strict=True)
    description: Optional[str] = None
    ep_number: Optional[int] = Field(None, ge=0, le=100000, strict=True)
    cut_order: Optional[int] = Field(None, ge=1, le=100000, strict=True)
    duration: Optional[int] = Field(None, ge=0, le=10_000_000, strict=True)

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return check_code(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return check_name(v)

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return check_text(v)

    model_config = INPUT_CONFIG


class EpisodeUpdate(EpisodeCreate):
    code: Optional[str] = None
    name: Optional[str] = None
    project_id: Optional[int] = Field(None, ge=1, strict=True)


class EpisodeResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    ep_number: Optional[int] = None
    cut_order: Optional[int] = None
    duration: Optional[int] = None
    project_id: int
    status_id: Optional[str] = None
    created_by: Optional[int] = None
    assigned_to: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = OUTPUT_CONFIG


# Sequence Schemas
class SequenceCreate(StatusRefMixin):
    code: str
    name: str
    episode_id: int = Field(..., ge=1, strict=True)
    description: Optional[str] = None
    cut_order: Optional[int] = Field(None, ge=1, le=100000, strict=True)
    story_id: Optional[str] = None
    duration: Optional[int] = Field(None, ge=0, le=10_000_000, strict=True)

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return check_code(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return check_name(v)

    @field_validator('story_id')
    @classmethod
    def validate_story_id(cls, v):
        if v is None:
            return v
        return Validator.validate_safe_identifier(v, 'story_id', 1, 100)

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return check_text(v)

    model_config = INPUT_CONFIG


class SequenceUpdate(SequenceCreate):
    code: Optional[str] = None
    name: Optional[str] = None
    episode_id: Optional[int] = Field(None, ge=1, strict=True)


class SequenceResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    cut_order: Optional[int] = None
    story_id: Optional[str] = None
    duration: Optional[int] = None
    episode_id: int
    status_id: Optional[str] = None
    created_by: Optional[int] = None
    assigned_to: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = OUTPUT_CONFIG


# Shot Schemas
class ShotCreate(StatusRefMixin):
    code: Optional[str] = None
    name: str
    sequence_id: int = Field(..., ge=1, strict=True)
    description: Optional[str] = None
    sequence_number: int = Field(default=1, ge=1, le=100000, strict=True)
    shot_type: Optional[ShotType] = None
    duration: Optional[int] = Field(None, ge=0, le=10_000_000, strict=True)
    cut_order: Optional[int] = Field(None, ge=1, le=100000, strict=True)

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return check_code(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return check_name(v)

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return check_text(v)

    model_config = INPUT_CONFIG


class ShotUpdate(ShotCreate):
    name: Optional[str] = None
    sequence_id: Optional[int] = Field(None, ge=1, strict=True)
    sequence_number: Optional[int] = Field(None, ge=1, le=100000, strict=True)


class ShotResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    sequence_number: int
    shot_type: Optional[ShotType] = None
    duration: Optional[int] = None
    cut_order: Optional[int] = None
    sequence_id: int
    status_id: Optional[str] = None
    created_by: Optional[int] = None
    assigned_to: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = OUTPUT_CONFIG


# Asset Schemas
class AssetCreate(StatusRefMixin):
    code: str
    name: str
    project_id: int = Field(..., ge=1, strict=True)
    asset_type: AssetType = AssetType.TXT
    description: Optional[str] = None

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return check_code(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return check_name(v)

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return check_text(v)

    model_config = INPUT_CONFIG


class AssetUpdate(AssetCreate):
    code: Optional[str] = None
    name: Optional[str] = None
    project_id: Optional[int] = Field(None, ge=1, strict=True)
    asset_type: Optional[AssetType] = None


class AssetResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    asset_type: AssetType
    thumbnail_path: Optional[str] = None
    project_id: int
    status_id: Optional[str] = None
    created_by: Optional[int] = None
    assigned_to: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = OUTPUT_CONFIG


# Playlist Schemas
def check_version_codes(codes):
    if codes is None:
        return codes
    cleaned = [Validator.validate_safe_identifier(code, 'version_codes', 1, 100) for code in codes]
    if len(set(cleaned)) != len(cleaned):
        raise ValidationError('version_codes must not contain duplicates')
    return cleaned


class PlaylistCreate(StatusRefMixin):
    code: str
    name: str
    project_id: int = Field(..., ge=1, strict=True)
    description: Optional[str] = None
    version_codes: Optional[List[str]] = Field(None, max_length=1000)

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return check_code(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return check_name(v)

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return check_text(v)

    @field_validator('version_codes')
    @classmethod
    def validate_version_codes(cls, v):
        return check_version_codes(v)

    model_config = INPUT_CONFIG


class PlaylistUpdate(StatusRefMixin):
    code: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return check_code(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return check_name(v)

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return check_text(v)

    model_config = INPUT_CONFIG


class PlaylistAddVersion(BaseModel):
    version_code: str
    position: Optional[int] = Field(None, ge=0, strict=True)

    @field_validator('version_code')
    @classmethod
    def validate_version_code(cls, v):
        return Validator.validate_safe_identifier(v, 'version_code', 1, 100)

    model_config = INPUT_CONFIG


class PlaylistReorder(BaseModel):
    version_codes: List[str] = Field(..., max_length=1000)

    @field_validator('version_codes')
    @classmethod
    def validate_version_codes(cls, v):
        return check_version_codes(v)

    model_config = INPUT_CONFIG


class PlaylistFromVersions(PlaylistCreate):
    version_codes: List[str] = Field(..., min_length=1, max_length=1000)


class PlaylistResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    project_id: int
    status_id: Optional[str] = None
    status_updated_at: Optional[datetime] = None
    version_codes: List[str] = []
    created_by: Optional[int] = None
    assigned_to: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = OUTPUT_CONFIG


# Version Schemas
class VersionFieldsMixin(StatusRefMixin):
    description: Optional[str] = None
    artist: Optional[str] = None
    format: Optional[str] = None
    frame_range: Optional[str] = None
    duration: Optional[float] = Field(None, ge=0, le=10_000_000, strict=True, allow_inf_nan=False)

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return check_text(v)

    @field_validator('artist')
    @classmethod
    def validate_artist(cls, v):
        if v is None:
            return v
        return Validator.validate_safe_identifier(v, 'artist', 1, 255)

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v is None:
            return v
        return Validator.validate_safe_identifier(v, 'format', 1, 50)

    @field_validator('frame_range')
    @classmethod
    def validate_frame_range(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not FRAME_RANGE_PATTERN.match(v):
            raise ValidationError('frame_range must look like 1001-1100')
        start, end = (int(part) for part in v.split('-'))
        if end < start:
            raise ValidationError('frame_range end must not be before start')
        return v


class VersionCreate(VersionFieldsMixin):
    code: str
    name: str
    entity_type: VersionEntityType
    entity_id: Optional[int] = Field(None, ge=1, strict=True)
    entity_code: Optional[str] = None
    latest: StrictBool = True

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return Validator.validate_safe_identifier(v, 'code', CODE_MIN_LENGTH, 100)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return check_name(v)

    @field_validator('entity_code')
    @classmethod
    def validate_entity_code(cls, v):
        return check_code(v, 'entity_code')

    @model_validator(mode='after')
    def require_entity_reference(self):
        if self.entity_id is None and self.entity_code is None:
            raise ValidationError('Either entity_id or entity_code must be provided')
        return self

    model_config = INPUT_CONFIG


class VersionUpdate(VersionFieldsMixin):
    code: Optional[str] = None
    name: Optional[str] = None
    latest: Optional[StrictBool] = None

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        if v is None:
            return v
        return Validator.validate_safe_identifier(v, 'code', CODE_MIN_LENGTH, 100)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return check_name(v)

    model_config = INPUT_CONFIG


class VersionResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    version_number: int
    entity_type: VersionEntityType
    entity_id: int
    latest: bool
    file_path: Optional[str] = None
    thumbnail_path: Optional[str] = None
    artist: Optional[str] = None
    format: Optional[str] = None
    frame_range: Optional[str] = None
    duration: Optional[float] = None
    status_id: Optional[str] = None
    status_updated_at: Optional[datetime] = None
    created_by: Optional[int] = None
    assigned_to: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = OUTPUT_CONFIG


class InitialVersionMixin(BaseModel):
    """Optional overrides for the first version created alongside an entity."""
    version_code: Optional[str] = None
    version_name: Optional[str] = None
    version_description: Optional[str] = None
    version_status: Optional[str] = None

    @field_validator('version_code')
    @classmethod
    def validate_version_code(cls, v):
        if v is None:
            return v
        return Validator.validate_safe_identifier(v, 'version_code', CODE_MIN_LENGTH, 100)

    @field_validator('version_name')
    @classmethod
    def validate_version_name(cls, v):
        return check_name(v, 'version_name')

    @field_validator('version_description')
    @classmethod
    def sanitize_version_description(cls, v):
        return check_text(v, 'version_description')

    @field_validator('version_status')
    @classmethod
    def validate_version_status(cls, v):
        return check_code(v, 'version_status')


class ShotWithVersionCreate(ShotCreate, InitialVersionMixin):
    model_config = INPUT_CONFIG


class AssetWithVersionCreate(AssetCreate, InitialVersionMixin):
    code: Optional[str] = None

    model_config = INPUT_CONFIG


class SequenceWithVersionCreate(SequenceCreate, InitialVersionMixin):
    code: Optional[str] = None

    model_config = INPUT_CONFIG


class PlaylistWithVersionCreate(PlaylistCreate, InitialVersionMixin):
    code: Optional[str] = None

    model_config = INPUT_CONFIG


# Note Schemas
class NoteCreate(BaseModel):
    link_type: NoteLinkType
    link_id: str
    subject: str
    content: str
    is_read: StrictBool = False
    assigned_to: Optional[int] = Field(None, ge=1, strict=True)

    @field_validator('link_id', mode='before')
    @classmethod
    def validate_link_id(cls, v):
        # Accept JSON integers too; stored as the string form.
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not v.strip().isdigit() or int(v) < 1:
            raise ValidationError('link_id must be a positive integer id')
        return str(int(v))

    @field_validator('subject')
    @classmethod
    def validate_subject(cls, v):
        return Validator.validate_safe_identifier(v, 'subject', 1, 255)

    @field_validator('content')
    @classmethod
    def sanitize_content(cls, v):
        return Validator.validate_safe_text(v, 'content', NOTE_CONTENT_MAX_LENGTH, allow_blank=False)

    model_config = INPUT_CONFIG


class NoteUpdate(BaseModel):
    subject: Optional[str] = None
    content: Optional[str] = None
    is_read: Optional[StrictBool] = None
    assigned_to: Optional[int] = Field(None, ge=1, strict=True)

    @field_validator('subject')
    @classmethod
    def validate_subject(cls, v):
        if v is None:
            return v
        return Validator.validate_safe_identifier(v, 'subject', 1, 255)

    @field_validator('content')
    @classmethod
    def sanitize_content(cls, v):
        if v is None:
            return v
        return Validator.validate_safe_text(v, 'content', NOTE_CONTENT_MAX_LENGTH, allow_blank=False)

    model_config = INPUT_CONFIG


class NoteResponse(BaseModel):
    id: str
    link_type: NoteLinkType
    link_id: str
    subject: str
    content: str
    is_read: bool
    attachments: List[str] = []
    created_by: Optional[int] = None
    assigned_to: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = OUTPUT_CONFIG


# Notification Schemas
NOTIFICATION_ENTITY_TYPES = tuple(t.value for t in NoteLinkType) + ('Note',)


class NotificationCreate(BaseModel):
    user_id: int = Field(..., ge=1, strict=True)
    type: NotificationType
    title: str
    message: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        return Validator.validate_safe_identifier(v, 'title', 1, 255)

    @field_validator('message')
    @classmethod
    def sanitize_message(cls, v):
        return Validator.validate_safe_text(v, 'message', DESCRIPTION_MAX_LENGTH, allow_blank=False)

    @field_validator('entity_type')
    @classmethod
    def validate_entity_type(cls, v):
        if v is None:
            return v
        return Validator.validate_choice(v, 'entity_type', NOTIFICATION_ENTITY_TYPES)

    @field_validator('entity_id', mode='before')
    @classmethod
    def validate_entity_id(cls, v):
        if v is None:
            return v
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str):
            raise ValidationError('entity_id must be a string or integer id')
        return Validator.validate_safe_identifier(v, 'entity_id', 1, 50)

    @model_validator(mode='after')
    def check_entity_pair(self):
        if (self.entity_type is None) != (self.entity_id is None):
            raise ValidationError('entity_type and entity_id must be given together')
        return self

    model_config = INPUT_CONFIG


class NotificationResponse(BaseModel):
    id: str
    user_id: int
    type: NotificationType
    title: str
    message: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    is_read: bool
    details: Optional[Dict[str, Any]] = None
    triggered_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = OUTPUT_CONFIG


# Auth & User Schemas
class RegisterRequest(BaseModel):
    email: str
    name: str
    password: str = Field(..., max_length=128)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return Validator.validate_email(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return Validator.validate_safe_identifier(v, 'name', 2, 100)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return Validator.validate_password_strength(v)

    model_config = INPUT_CONFIG


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()

    model_config = INPUT_CONFIG


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1, max_length=128)

    model_config = INPUT_CONFIG


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., max_length=254)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()

    model_config = INPUT_CONFIG


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., max_length=128)

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, v):
        return Validator.validate_password_strength(v)

    model_config = INPUT_CONFIG


class UserAdminUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None
    is_active: Optional[StrictBool] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if v is None:
            return v
        return Validator.validate_safe_identifier(v, 'name', 2, 100)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v is None:
            return v
        return Validator.validate_email(v)

    model_config = INPUT_CONFIG


class UserSelfUpdate(BaseModel):
    name: Optional[str] = None
    current_password: Optional[str] = Field(None, max_length=128)
    new_password: Optional[str] = Field(None, max_length=128)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if v is None:
            return v
        return Validator.validate_safe_identifier(v, 'name', 2, 100)

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, v):
        if v is None:
            return v
        return Validator.validate_password_strength(v)

    @model_validator(mode='after')
    def require_current_password(self):
        if self.new_password and not self.current_password:
            raise ValidationError('current_password is required to set a new password')
        return self

    model_config = INPUT_CONFIG


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    role: UserRole
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime

    model_config = OUTPUT_CONFIG


def serialize(schema, resource) -> Dict[str, Any]:
    """Dump an ORM object through its response schema."""
    return schema.model_validate(resource).model_dump(mode='json')
