"""Project-wide constants (transfer tuning, cache TTL, default ports)."""

DEFAULT_PORT: int = 3000
PORT_FALLBACK_ATTEMPTS: int = 20

SIZE_CACHE_TTL_SECONDS: float = 60.0

DOWNLOAD_BUFFER_SIZE: int = 1024 * 1024  # 1 MiB reads for large files
UPLOAD_READ_SIZE: int = 1024 * 1024

ARCHIVE_COMPRESSION_LEVEL: int = 9
ARCHIVE_CHUNK_SIZE: int = 256 * 1024
ARCHIVE_QUEUE_DEPTH: int = 8

# Browsers strip "/" from multipart filenames, so the UI flattens folder
# uploads with this marker.
UPLOAD_PATH_MARKER: str = "@@@"

SHUTDOWN_GRACE_SECONDS: float = 1.0
