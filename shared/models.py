import uuid
from datetime import datetime
from zoneinfo import ZoneInfo
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, Text, Date, DateTime, ForeignKey, Index,
    Enum, CheckConstraint, UniqueConstraint, JSON, true
)
from sqlalchemy.orm import relationship, declarative_base, declared_attr
from shared.enums import (
    UserRole, ProjectRole, TokenType, VersionEntityType, NoteLinkType, ShotType, AssetType, NotificationType
)

Base = declarative_base()

# All timestamps are produced in UTC. SQLite drops tzinfo on storage, so values
# read back are naive UTC; use ensure_aware() before comparing with now().
APP_TIMEZONE = ZoneInfo('UTC')


def now():
    """Return current datetime in application timezone (timezone-aware)."""
    return datetime.now(APP_TIMEZONE)


def ensure_aware(value):
    """Attach APP_TIMEZONE to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=APP_TIMEZONE)


def new_uuid():
    return str(uuid.uuid4())


def enum_column_type(enum_cls):
    """Store str enums by value ('owner') rather than by member name ('OWNER')."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=40,
    )


class TimestampMixin:
    created_at = Column(DateTime, default=now, index=True)
    updated_at = Column(DateTime, default=now, onupdate=now)


class ProductionEntityMixin(TimestampMixin):
    """Columns shared by every tracked production entity."""

    description = Column(Text, server_default="")

    @declared_attr
    def created_by(cls):
        return Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    @declared_attr
    def assigned_to(cls):
        return Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)


class User(Base, TimestampMixin):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, nullable=False)
    email = Column(String(254), unique=True, nullable=False)
    name = Column(String(100), nullable=False, server_default="")
    password_hash = Column(String(256), nullable=False, server_default="")
    role = Column(enum_column_type(UserRole), default=UserRole.MEMBER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, server_default='1')
    last_login_at = Column(DateTime, nullable=True)
    password_reset_token = Column(String(128), nullable=True, index=True)
    password_reset_expires_at = Column(DateTime, nullable=True)
    tokens = relationship('AuthToken', backref='user', cascade="all, delete-orphan", passive_deletes=True)
    permissions = relationship('ProjectPermission', backref='user', cascade="all, delete-orphan", passive_deletes=True)


class AuthToken(Base):
    __tablename__ = 'auth_tokens'
    id = Column(Integer, primary_key=True, nullable=False)
    token = Column(String(128), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    token_type = Column(enum_column_type(TokenType), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=now)


class Status(Base, TimestampMixin):
    __tablename__ = 'statuses'
    id = Column(String(36), primary_key=True, default=new_uuid)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, server_default="")
    color = Column(String(7), nullable=False, server_default='#808080')
    is_active = Column(Boolean, default=True, nullable=False, server_default='1')
    sort_order = Column(Integer, default=0, nullable=False, server_default='0')
    applicable_entities = Column(JSON, default=list)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    __table_args__ = (
        CheckConstraint('sort_order >= 0', name='chk_status_sort_order'),
    )


class Project(Base, ProductionEntityMixin):
    __tablename__ = 'projects'
    id = Column(Integer, primary_key=True, nullable=False)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    client_name = Column(String(255), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    status_id = Column(String(36), ForeignKey('statuses.id', ondelete='SET NULL'), nullable=True, index=True)
    status = relationship('Status')
    episodes = relationship('Episode', backref='project', lazy='select', cascade="all, delete-orphan",
                            passive_deletes=True)
    assets = relationship('Asset', backref='project', lazy='select', cascade="all, delete-orphan", passive_deletes=True)
    playlists = relationship('Playlist', backref='project', lazy='select', cascade="all, delete-orphan",
                             passive_deletes=True)
    permissions = relationship('ProjectPermission', backref='project', cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint('end_date IS NULL OR start_date IS NULL OR end_date >= start_date',
                        name='chk_project_date_range'),
    )


class ProjectPermission(Base, TimestampMixin):
    __tablename__ = 'project_permissions'
    id = Column(Integer, primary_key=True, nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    role = Column(enum_column_type(ProjectRole), default=ProjectRole.VIEWER, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'project_id', name='uq_project_permission_user_project'),
    )


class Episode(Base, ProductionEntityMixin):
    __tablename__ = 'episodes'
    id = Column(Integer, primary_key=True, nullable=False)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    ep_number = Column(Integer, nullable=True)
    cut_order = Column(Integer, nullable=True)
    duration = Column(Integer, nullable=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    status_id = Column(String(36), ForeignKey('statuses.id', ondelete='SET NULL'), nullable=True, index=True)
    status = relationship('Status')
    sequences = relationship('Sequence', backref='episode', lazy='select', cascade="all, delete-orphan",
                             passive_deletes=True)

    __table_args__ = (
        CheckConstraint('cut_order IS NULL OR cut_order >= 1', name='chk_episode_cut_order'),
        CheckConstraint('duration IS NULL OR duration >= 0', name='chk_episode_duration'),
    )

Index('idx_episode_project_id', Episode.project_id)


class Sequence(Base, ProductionEntityMixin):
    __tablename__ = 'sequences'
    id = Column(Integer, primary_key=True, nullable=False)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    cut_order = Column(Integer, nullable=True)
    story_id = Column(String(100), nullable=True)
    duration = Column(Integer, nullable=True)
    episode_id = Column(Integer, ForeignKey('episodes.id', ondelete='CASCADE'), nullable=False)
    status_id = Column(String(36), ForeignKey('statuses.id', ondelete='SET NULL'), nullable=True, index=True)
    status = relationship('Status')
    shots = relationship('Shot', backref='sequence', lazy='select', cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        CheckConstraint('cut_order IS NULL OR cut_order >= 1', name='chk_sequence_cut_order'),
        CheckConstraint('duration IS NULL OR duration >= 0', name='chk_sequence_duration'),
    )

Index('idx_sequence_episode_id', Sequence.episode_id)


class Shot(Base, ProductionEntityMixin):
    __tablename__ = 'shots'
    id = Column(Integer, primary_key=True, nullable=False)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    sequence_number = Column(Integer, nullable=False, default=1)
    shot_type = Column(enum_column_type(ShotType), nullable=True)
    duration = Column(Integer, nullable=True)
    cut_order = Column(Integer, nullable=True)
    sequence_id = Column(Integer, ForeignKey('sequences.id', ondelete='CASCADE'), nullable=False)
    status_id = Column(String(36), ForeignKey('statuses.id', ondelete='SET NULL'), nullable=True, index=True)
    status = relationship('Status')

    __table_args__ = (
        CheckConstraint('sequence_number >= 1', name='chk_shot_sequence_number'),
        CheckConstraint('duration IS NULL OR duration >= 0', name='chk_shot_duration'),
    )

Index('idx_shot_sequence_id', Shot.sequence_id)


class Asset(Base, ProductionEntityMixin):
    __tablename__ = 'assets'
    id = Column(Integer, primary_key=True, nullable=False)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    asset_type = Column(enum_column_type(AssetType), default=AssetType.TXT, nullable=False)
    thumbnail_path = Column(String(500), nullable=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    status_id = Column(String(36), ForeignKey('statuses.id', ondelete='SET NULL'), nullable=True, index=True)
    status = relationship('Status')

Index('idx_asset_project_id', Asset.project_id)


class Playlist(Base, ProductionEntityMixin):
    __tablename__ = 'playlists'
    id = Column(Integer, primary_key=True, nullable=False)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    status_id = Column(String(36), ForeignKey('statuses.id', ondelete='SET NULL'), nullable=True, index=True)
    status_updated_at = Column(DateTime, nullable=True)
    status = relationship('Status')
    items = relationship('PlaylistVersion', backref='playlist', order_by='PlaylistVersion.position',
                         cascade="all, delete-orphan")

    @property
    def version_codes(self):
        return [item.version.code for item in self.items]

Index('idx_playlist_project_id', Playlist.project_id)


class Version(Base, ProductionEntityMixin):
    __tablename__ = 'versions'
    id = Column(Integer, primary_key=True, nullable=False)
    code = Column(String(100), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    version_number = Column(Integer, nullable=False, default=1)
    entity_type = Column(enum_column_type(VersionEntityType), nullable=False)
    entity_id = Column(Integer, nullable=False)
    latest = Column(Boolean, default=False, nullable=False, server_default='0')
    file_path = Column(String(500), nullable=True)
    thumbnail_path = Column(String(500), nullable=True)
    artist = Column(String(255), nullable=True)
    format = Column(String(50), nullable=True)
    frame_range = Column(String(50), nullable=True)
    duration = Column(Float, nullable=True)
    status_id = Column(String(36), ForeignKey('statuses.id', ondelete='SET NULL'), nullable=True, index=True)
    status_updated_at = Column(DateTime, nullable=True)
    status = relationship('Status')
    playlist_entries = relationship('PlaylistVersion', backref='version', cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('entity_type', 'entity_id', 'version_number', name='uq_version_entity_number'),
        CheckConstraint('version_number >= 1', name='chk_version_number_positive'),
        CheckConstraint('duration IS NULL OR duration >= 0', name='chk_version_duration'),
    )

Index('idx_version_entity', Version.entity_type, Version.entity_id)
# At most one latest version per parent entity.
Index(
    'uq_version_single_latest', Version.entity_type, Version.entity_id,
    unique=True,
    sqlite_where=Version.latest == true(),
    postgresql_where=Version.latest == true(),
)


class PlaylistVersion(Base):
    __tablename__ = 'playlist_versions'
    id = Column(Integer, primary_key=True, nullable=False)
    playlist_id = Column(Integer, ForeignKey('playlists.id', ondelete='CASCADE'), nullable=False)
    version_id = Column(Integer, ForeignKey('versions.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('playlist_id', 'version_id', name='uq_playlist_version'),
    )

Index('idx_playlist_version_order', PlaylistVersion.playlist_id, PlaylistVersion.position)


class Note(Base, TimestampMixin):
    __tablename__ = 'notes'
    id = Column(String(36), primary_key=True, default=new_uuid)
    link_id = Column(String(50), nullable=False)
    link_type = Column(enum_column_type(NoteLinkType), nullable=False)
    subject = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False, server_default='0')
    attachments = Column(JSON, default=list)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    assigned_to = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

Index('idx_note_link', Note.link_type, Note.link_id)


class Notification(Base, TimestampMixin):
    """A message for one user about something that happened to their work."""
    __tablename__ = 'notifications'
    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    type = Column(enum_column_type(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(50), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False, server_default='0', index=True)
    # "metadata" is reserved on declarative classes
    details = Column(JSON, nullable=True)
    triggered_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

Index('idx_notification_user_read', Notification.user_id, Notification.is_read)
Index('idx_notification_user_created', Notification.user_id, Notification.created_at)
Index('idx_notification_entity', Notification.entity_type, Notification.entity_id)


# Maps polymorphic link names onto their model classes.
VERSION_ENTITY_MODELS = {
    VersionEntityType.PROJECT: Project,
    VersionEntityType.EPISODE: Episode,
    VersionEntityType.SEQUENCE: Sequence,
    VersionEntityType.SHOT: Shot,
    VersionEntityType.ASSET: Asset,
    VersionEntityType.PLAYLIST: Playlist,
}

NOTE_LINK_MODELS = {
    NoteLinkType.PROJECT: Project,
    NoteLinkType.EPISODE: Episode,
    NoteLinkType.SEQUENCE: Sequence,
    NoteLinkType.SHOT: Shot,
    NoteLinkType.ASSET: Asset,
    NoteLinkType.VERSION: Version,
    NoteLinkType.PLAYLIST: Playlist,
}
