"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

The core never reads configuration itself. Everything here is turned into
plain values and handed to the core classes at construction time.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.uploads.models import MIB, AssetType, UploadPolicy


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like api_keys), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "MediaDrop API"
    api_version: str = "v1"
    api_base_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL of this API. Clients fetch credentials from here."
    )
    api_keys: str = Field(
        default="",
        description="Comma-separated API keys. Empty disables API key checks."
    )
    rate_limit_bypass_keys: str = Field(
        default="",
        description="Comma-separated API keys that bypass rate limiting. For trusted users/admins."
    )

    # ImageKit Configuration
    imagekit_public_key: str = Field(
        default="",
        description="ImageKit public key. Sent by clients with every upload."
    )
    imagekit_private_key: str = Field(
        default="",
        description="ImageKit private key. Signs upload credentials; never leaves the server."
    )
    imagekit_url_endpoint: str = Field(
        default="",
        description="ImageKit URL endpoint used to build public asset URLs."
    )
    imagekit_upload_url: str = Field(
        default="https://upload.imagekit.io/api/v1/files/upload",
        description="ImageKit upload API URL."
    )
    storage_mock_mode: bool = Field(
        default=False,
        description="Use in-memory object store instead of ImageKit. Enables local dev without an account."
    )

    # Credential Issuance
    credential_validity_seconds: int = Field(
        default=1800,
        description="How long an upload credential stays valid. 30 minutes matches the ImageKit SDK."
    )
    credential_bind_scope: bool = Field(
        default=True,
        description="Bind folder and public key into the signature. Disable for stores that only check token+expire."
    )
    credential_digest: Literal["sha1", "sha256"] = Field(
        default="sha1",
        description="HMAC digest for credential signatures. ImageKit verifies sha1."
    )
    default_upload_folder: str = Field(
        default="/",
        description="Folder bound into credentials when the client does not name one."
    )

    # Rate Limiting
    rate_limit_max_requests: int = Field(
        default=10,
        description="Credential requests allowed per identity per window."
    )
    rate_limit_window_seconds: int = Field(
        default=10,
        description="Length of the fixed rate limit window in seconds."
    )
    rate_limit_prefix: str = Field(
        default="ratelimit:upload-credential",
        description="Key prefix for rate limit counters."
    )
    rate_limit_fail_open: bool = Field(
        default=False,
        description="Permit requests when the counter store is down. Prefers availability over strict limiting."
    )

    # Redis Configuration
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for rate limit counters"
    )
    redis_mock_mode: bool = Field(
        default=False,
        description="Use in-memory counters instead of Redis. Only correct for a single worker process."
    )

    # Upload Policy (client side)
    max_image_size_mb: int = Field(
        default=20,
        description="Largest image a client may upload, in MiB."
    )
    max_video_size_mb: int = Field(
        default=50,
        description="Largest video a client may upload, in MiB."
    )
    accepted_image_types: str = Field(
        default="image/*",
        description="Comma-separated MIME patterns accepted for image uploads."
    )
    accepted_video_types: str = Field(
        default="video/*",
        description="Comma-separated MIME patterns accepted for video uploads."
    )
    credential_request_timeout_seconds: float = Field(
        default=10.0,
        description="Client-side bound on waiting for a credential."
    )
    upload_timeout_seconds: float = Field(
        default=300.0,
        description="Client-side bound on a single transfer."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @staticmethod
    def _split(value: str) -> list[str]:
        return [item.strip() for item in value.split(",") if item.strip()]

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return self._split(self.api_keys)

    @property
    def rate_limit_bypass_keys_list(self) -> list[str]:
        """Parse comma-separated bypass API keys into a list."""
        return self._split(self.rate_limit_bypass_keys)

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return self._split(self.cors_origins)

    @property
    def upload_policy(self) -> UploadPolicy:
        """Client-side validation policy built from the size and type settings."""
        return UploadPolicy(
            max_bytes={
                AssetType.IMAGE: self.max_image_size_mb * MIB,
                AssetType.VIDEO: self.max_video_size_mb * MIB,
            },
            accepted_types={
                AssetType.IMAGE: tuple(self._split(self.accepted_image_types)),
                AssetType.VIDEO: tuple(self._split(self.accepted_video_types)),
            },
        )

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        # The signing key is always required; nothing can be issued without it
        if not self.imagekit_private_key:
            missing.append("IMAGEKIT_PRIVATE_KEY")

        if not self.imagekit_public_key:
            missing.append("IMAGEKIT_PUBLIC_KEY")

        if not self.storage_mock_mode and not self.imagekit_url_endpoint:
            missing.append("IMAGEKIT_URL_ENDPOINT")

        if not self.redis_mock_mode and not self.redis_url:
            missing.append("REDIS_URL")

        return missing

    def configuration_warnings(self) -> list[str]:
        """Settings that are valid on their own but will not work together."""
        warnings = []

        # ImageKit only signs token and expire
        if self.credential_bind_scope and not self.storage_mock_mode:
            warnings.append(
                "CREDENTIAL_BIND_SCOPE is on with real storage: ImageKit verifies "
                "HMAC(token + expire) only and will reject scope-bound signatures. "
                "Set CREDENTIAL_BIND_SCOPE=false for ImageKit."
            )

        if self.credential_digest != "sha1" and not self.storage_mock_mode:
            warnings.append(
                f"CREDENTIAL_DIGEST={self.credential_digest} with real storage: "
                "ImageKit verifies HMAC-SHA1 signatures only."
            )

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    This is safe because settings don't change during runtime.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()
