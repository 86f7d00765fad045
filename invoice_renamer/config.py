"""Configuration management for invoice renaming."""
from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from invoice_renamer.core.exceptions import ConfigurationError
from invoice_renamer.core.naming import RecordIdScheme


class Settings(BaseSettings):
    """Centralized configuration for invoice renaming."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API Configuration
    gemini_api_key: str = Field(
        ...,
        validation_alias=AliasChoices("gemini_api_key", "api_key"),
        description="Gemini API key for invoice field extraction"
    )
    use_vertex_ai: bool = Field(default=False, description="Use Vertex AI instead of standard Gemini API")
    google_cloud_project: str = Field(default="not-set", description="Google Cloud project for Vertex AI")
    google_cloud_location: str = Field(default="not-set", description="Google Cloud location for Vertex AI")

    # Model Configuration
    extraction_model: str = Field(default="gemini-2.5-flash", description="Model for invoice field extraction")
    extract_buyer_name: bool = Field(default=True, description="Also request the buyer name from the model")

    # Rendering Configuration
    render_scale: float = Field(default=1.5, gt=0, description="Zoom factor for the first-page render")
    jpeg_quality: int = Field(default=92, ge=1, le=100, description="JPEG quality of the page image")

    # Processing Configuration
    max_concurrency: int | None = Field(default=None, ge=1, description="Concurrent file pipelines, unlimited when unset")
    record_id_scheme: RecordIdScheme = Field(default=RecordIdScheme.NAME_MTIME, description="How file record ids are built")

    # Output Configuration
    archive_name: str = Field(default="renamed_invoices.zip", description="File name of the multi-file download")
    preset_recipients: dict[str, str] = Field(
        default_factory=lambda: {"富元機電": "fuhyuan.w5339@msa.hinet.net"},
        description="Named email recipients offered for composing mail"
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Console log level")

    @field_validator("gemini_api_key")
    @classmethod
    def api_key_must_not_be_empty(cls, v):
        """Ensure API key is provided."""
        if not v or v.strip() == "":
            raise ValueError("GEMINI_API_KEY must be provided")
        return v

    @field_validator("use_vertex_ai", "extract_buyer_name", mode="before")
    @classmethod
    def parse_flag(cls, v):
        """Parse boolean flags given as strings."""
        if isinstance(v, str):
            return v == "1" or v.lower() == "true"
        return v

    @field_validator("max_concurrency", mode="before")
    @classmethod
    def empty_concurrency_is_unlimited(cls, v):
        if isinstance(v, str) and v.strip() in ("", "0"):
            return None
        return v

    @classmethod
    def from_env(cls, env_file: str | None = ".env") -> "Settings":
        """Create Settings from the environment and an optional .env file.

        Raises:
            ConfigurationError: If a setting is missing or invalid
        """
        try:
            return cls(_env_file=env_file)
        except ValidationError as e:
            first = e.errors()[0]
            setting = ".".join(str(part) for part in first.get("loc", ())) or "settings"
            raise ConfigurationError(setting, first.get("msg", str(e))) from e

    @property
    def api_client_kwargs(self) -> dict:
        """Keyword arguments for ``google.genai.Client``."""
        if self.use_vertex_ai:
            return {
                "vertexai": True,
                "project": self.google_cloud_project,
                "location": self.google_cloud_location,
            }
        return {"api_key": self.gemini_api_key}
