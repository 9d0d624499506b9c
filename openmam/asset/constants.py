"""
Media asset — static constants and enum types.
"""
import enum


class ProxyStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"
    NONE = "none"  # non-video assets never get a proxy


class SortField(str, enum.Enum):
    CREATED_AT = "created_at"
    TITLE = "title"
    FILE_SIZE = "file_size"
    DURATION = "duration"


class SortOrder(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


class AssetVariant(str, enum.Enum):
    """Stored renditions an asset can have."""
    ORIGINAL = "original"
    PROXY = "proxy"
    THUMBNAIL = "thumbnail"
    POSTER = "poster"


# Listing / search pagination bounds
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Search tokenizer: lowercase ASCII alphanumerics plus Latin-1 Supplement,
# Latin Extended-A and Latin Extended-B letters.
WORD_PATTERN = r"[a-z0-9\u00C0-\u024F]+"
MIN_WORD_LENGTH = 2

VIDEO_MIME_PREFIX = "video/"
