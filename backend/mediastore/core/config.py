import os

from mediastore.services.validation import DEFAULT_ALLOWED_CONTENT_TYPES


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_set(name: str, default: frozenset) -> frozenset:
    """Comma-separated env value, or ``default`` when unset or blank."""
    raw = os.getenv(name, "")
    values = frozenset(v.strip() for v in raw.split(",") if v.strip())
    return values or default


class Settings:
    SECRET_KEY: str = os.getenv("SECRET_KEY", "your-secret-key")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./mediastore.db")
    DATABASE_ECHO: bool = _env_bool("DATABASE_ECHO", "false")

    S3_ENDPOINT: str = os.getenv("S3_ENDPOINT", "minio:9000")
    S3_SECURE: bool = _env_bool("S3_SECURE", "false")
    S3_ACCESS_KEY: str = os.getenv("S3_ACCESS_KEY", "minioadmin")
    S3_SECRET_KEY: str = os.getenv("S3_SECRET_KEY", "minioadmin")
    S3_BUCKET: str = os.getenv("S3_BUCKET", "mediastore")
    S3_REGION: str = os.getenv("S3_REGION", "us-east-1")
    S3_CONNECT_TIMEOUT: float = float(os.getenv("S3_CONNECT_TIMEOUT", "10"))
    S3_READ_TIMEOUT: float = float(os.getenv("S3_READ_TIMEOUT", "30"))
    S3_MAX_ATTEMPTS: int = int(os.getenv("S3_MAX_ATTEMPTS", "3"))

    MAX_FILE_SIZE: int = int(os.getenv("MAX_FILE_SIZE", str(500 * 1024 * 1024)))
    UPLOAD_URL_DEFAULT_EXPIRY: int = int(os.getenv("UPLOAD_URL_DEFAULT_EXPIRY", "900"))
    UPLOAD_URL_MAX_EXPIRY: int = int(os.getenv("UPLOAD_URL_MAX_EXPIRY", "3600"))
    DOWNLOAD_URL_DEFAULT_EXPIRY: int = int(os.getenv("DOWNLOAD_URL_DEFAULT_EXPIRY", "3600"))
    DOWNLOAD_URL_MAX_EXPIRY: int = int(os.getenv("DOWNLOAD_URL_MAX_EXPIRY", "86400"))
    ALLOWED_CONTENT_TYPES: frozenset = _env_set("ALLOWED_CONTENT_TYPES", DEFAULT_ALLOWED_CONTENT_TYPES)

    @property
    def s3_endpoint_url(self) -> str:
        scheme = "https" if self.S3_SECURE else "http"
        return f"{scheme}://{self.S3_ENDPOINT}"

settings = Settings()
