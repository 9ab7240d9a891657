import os

from pydantic import BaseModel, Field


class DbSettings(BaseModel):
    """Where documents live and how their URLs are rendered."""

    host: str = Field(default="127.0.0.1", description="Host used in document URLs.")
    port: int = Field(default=5984, ge=1, le=65535, description="Port used in document URLs.")
    name: str = Field(default="plm-media", min_length=1, description="Database name, first URL path segment.")
    url: str = Field(default="sqlite:///plm-media.db", description="SQLAlchemy URL of the backing store.")


class ImageServiceConfig(BaseModel):
    db: DbSettings = Field(default_factory=DbSettings)
    gen_checksums: bool = Field(default=True, description="Compute a content checksum on ingestion.")
    max_update_attempts: int = Field(default=5, ge=1, description="Bound on optimistic update retries.")
    query_workers: int = Field(default=4, ge=1, description="Threads used for per-rule index lookups.")
    ingest_root: str | None = Field(
        default=None,
        description="Directory that HTTP ingestion paths must resolve into; unset trusts every caller.",
    )
    log_level: str = Field(default="INFO")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ImageServiceConfig":
        """Build settings from PLM_* environment variables, defaults elsewhere."""
        env = os.environ if environ is None else environ
        db: dict = {}
        for key, var in (("host", "PLM_DB_HOST"), ("port", "PLM_DB_PORT"), ("name", "PLM_DB_NAME"), ("url", "PLM_DB_URL")):
            if env.get(var):
                db[key] = env[var]
        data: dict = {"db": db}
        for key, var in (
            ("gen_checksums", "PLM_GEN_CHECKSUMS"),
            ("max_update_attempts", "PLM_MAX_UPDATE_ATTEMPTS"),
            ("query_workers", "PLM_QUERY_WORKERS"),
            ("log_level", "PLM_LOG_LEVEL"),
            ("ingest_root", "PLM_INGEST_ROOT"),
        ):
            if env.get(var):
                data[key] = env[var]
        return cls.model_validate(data)


__all__ = ["DbSettings", "ImageServiceConfig"]
