import enum


class UserRole(str, enum.Enum):
    """Global user roles.

    ADMIN bypasses every project-level permission check.
    """
    ADMIN = "admin"
    DIRECTOR = "director"
    ARTIST = "artist"
    MEMBER = "member"


class ProjectRole(str, enum.Enum):
    """Per-project permission roles, ordered viewer < contributor < owner."""
    OWNER = "owner"
    CONTRIBUTOR = "contributor"
    VIEWER = "viewer"


PROJECT_ROLE_RANK = {
    ProjectRole.VIEWER: 1,
    ProjectRole.CONTRIBUTOR: 2,
    ProjectRole.OWNER: 3,
}


class TokenType(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class VersionEntityType(str, enum.Enum):
    """Parent entity kinds a Version can belong to.

    Used together with Version.entity_id as a polymorphic link.
    """
    PROJECT = "project"
    EPISODE = "episode"
    SEQUENCE = "sequence"
    SHOT = "shot"
    ASSET = "asset"
    PLAYLIST = "playlist"


class NoteLinkType(str, enum.Enum):
    """Entity kinds a Note can be attached to."""
    PROJECT = "Project"
    EPISODE = "Episode"
    SEQUENCE = "Sequence"
    SHOT = "Shot"
    ASSET = "Asset"
    VERSION = "Version"
    PLAYLIST = "Playlist"


class ShotType(str, enum.Enum):
    ESTABLISHING = "establishing"
    MEDIUM = "medium"
    CLOSEUP = "closeup"
    DETAIL = "detail"


class AssetType(str, enum.Enum):
    """Asset categories produced during episode preparation.

    Subtitle and audio variants carry the language in their value.
    """
    PROMPT = "prompt"
    TXT = "txt"
    JSON = "json"
    SUBTITULOS_INGLES = "subtitulos_ingles"
    SUBTITULOS_ESPANOL = "subtitulos_espanol"
    DIRECTOR_SCRIPT = "director_script"
    AUDIO_ORIGINAL = "audio_original"
    AUDIO_CARICATURIZADO_INGLES = "audio_caricaturizado_ingles"
    AUDIO_CARICATURIZADO_ESPANOL = "audio_caricaturizado_espanol"


class StatusApplicability(str, enum.Enum):
    """Entity names a Status can apply to."""
    PROJECT = "project"
    EPISODE = "episode"
    SEQUENCE = "sequence"
    SHOT = "shot"
    VERSION = "version"
    ASSET = "asset"
    NOTE = "note"
    PLAYLIST = "playlist"
    ALL = "all"


class NotificationType(str, enum.Enum):
    """Events that produce an in-app notification for a user."""
    PROJECT_ASSIGNED = "project_assigned"
    EPISODE_ASSIGNED = "episode_assigned"
    SEQUENCE_ASSIGNED = "sequence_assigned"
    ASSET_ASSIGNED = "asset_assigned"
    VERSION_APPROVED = "version_approved"
    VERSION_REJECTED = "version_rejected"
    NOTE_CREATED = "note_created"
    NOTE_ASSIGNED = "note_assigned"
    NOTE_MENTION = "note_mention"
    STATUS_CHANGED = "status_changed"
    DEADLINE_APPROACHING = "deadline_approaching"
    TASK_COMPLETED = "task_completed"
    COMMENT_ADDED = "comment_added"
