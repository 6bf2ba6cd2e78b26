"""
Data models and constants for dirserve
"""

from enum import Enum
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from pathlib import Path


class ResponseCode(Enum):
    """Standard response codes"""
    BAD_REQUEST = 400
    METHOD_NOT_ALLOWED = 405
    INTERNAL_ERROR = 500


@dataclass
class ApiResponse:
    """Standard API response format"""
    code: int = 0
    msg: str = "success"
    data: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "msg": self.msg,
            "data": self.data
        }


@dataclass
class FileInfo:
    """Stat snapshot of a file or directory"""
    name: str
    path: str
    size: int
    is_dir: bool
    modified: float
    mime_type: str = ""


@dataclass
class CacheEntry:
    """Cached metadata for one absolute path"""
    modification_time: int  # st_mtime_ns
    is_directory: bool
    last_access: float


@dataclass(frozen=True)
class ResolvedRequest:
    """Request path paired with its absolute location under the root"""
    requested_path: str
    absolute_path: Path


@dataclass
class TlsConfig:
    """TLS configuration"""
    enabled: bool = False
    certfile: str = ""
    keyfile: str = ""


@dataclass
class ServerConfig:
    """Server configuration"""
    addr: str = "0.0.0.0"
    port: int = 3000
    tls: TlsConfig = field(default_factory=TlsConfig)
    shutdownTimeout: float = 10.0
    keepAliveTimeout: float = 120.0


@dataclass
class CacheConfig:
    """Metadata cache configuration"""
    ttl: float = 300.0


@dataclass
class ApiConfig:
    """JSON echo endpoint configuration"""
    paths: List[str] = field(default_factory=lambda: ["/post", "/api"])
    maxBodySize: int = 1048576


@dataclass
class MetricsConfig:
    """Health and metrics endpoints, off unless enabled"""
    enabled: bool = False
    prefix: str = "/_dirserve"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    json: bool = False
    file: str = ""
    level: str = "INFO"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass
class Config:
    """Main configuration container"""
    server: ServerConfig = field(default_factory=ServerConfig)
    root: Path = field(default_factory=lambda: Path(".").resolve())
    cache: CacheConfig = field(default_factory=CacheConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        if isinstance(self.root, str):
            self.root = Path(self.root)
        self.root = self.root.resolve()


# Common MIME types
MIME_TYPES = {
    '.txt': 'text/plain',
    '.html': 'text/html',
    '.htm': 'text/html',
    '.css': 'text/css',
    '.js': 'application/javascript',
    '.json': 'application/json',
    '.xml': 'application/xml',
    '.md': 'text/markdown',
    '.pdf': 'application/pdf',
    '.zip': 'application/zip',
    '.tar': 'application/x-tar',
    '.gz': 'application/gzip',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.bmp': 'image/bmp',
    '.ico': 'image/x-icon',
    '.svg': 'image/svg+xml',
    '.webp': 'image/webp',
    '.mp3': 'audio/mpeg',
    '.wav': 'audio/wav',
    '.mp4': 'video/mp4',
    '.avi': 'video/x-msvideo',
    '.mov': 'video/quicktime',
    '.wasm': 'application/wasm',
}

# Default MIME type for unknown files
DEFAULT_MIME_TYPE = 'application/octet-stream'

# Headers shared by every browse/serve response
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": "default-src 'self'",
}

NO_CACHE = "no-cache, no-store, must-revalidate"
