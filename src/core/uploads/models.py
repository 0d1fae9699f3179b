"""
Domain models for direct media uploads.

These models describe the upload authorization protocol and the client-side
upload session. Like the rest of the core, they have no dependencies on
FastAPI, Redis or HTTP clients.
"""

import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Optional

MIB = 1024 * 1024


class AssetType(Enum):
    """The kinds of media a user can upload."""
    IMAGE = "image"
    VIDEO = "video"


class UploadStatus(Enum):
    """
    Lifecycle of a single upload session.

    SUCCEEDED and FAILED are terminal: the only way out is a reset to IDLE.
    """
    IDLE = "idle"
    VALIDATING = "validating"
    REQUESTING_CREDENTIAL = "requesting_credential"
    UPLOADING = "uploading"
    CANCELLING = "cancelling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureReason(Enum):
    """Why an upload session ended in FAILED."""
    FILE_TOO_LARGE = "file_too_large"
    UNSUPPORTED_TYPE = "unsupported_type"
    AUTH_REQUEST_FAILED = "auth_request_failed"
    UPLOAD_FAILED = "upload_failed"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Upload Authorization
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UploadScope:
    """
    Parameters bound into a credential's signature besides token and expiry.

    A credential minted for one folder or public key does not verify
    for another.
    """
    public_key: str = ""
    resource_path: str = ""


@dataclass(frozen=True)
class UploadCredential:
    """
    Short-lived signed authorization for one direct upload.

    Frozen because a credential is a value: changing any field after
    issuance must invalidate it, not mutate it.
    """
    token: str
    expire: int
    signature: str

    def is_expired(self, now: float) -> bool:
        """A credential is expired at or after its expire timestamp."""
        return now >= self.expire

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "expire": self.expire,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadCredential":
        """Build a credential from the endpoint's JSON body."""
        try:
            return cls(
                token=str(data["token"]),
                expire=int(data["expire"]),
                signature=str(data["signature"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed upload credential: {e}") from e


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single rate limit check."""
    permitted: bool
    limit: int
    remaining: int
    retry_after: Optional[float] = None


# ---------------------------------------------------------------------------
# Client-side Upload Session
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LocalAsset:
    """A file the user selected for upload."""
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str | Path, content_type: Optional[str] = None) -> "LocalAsset":
        """Read a file from disk, guessing its MIME type from the extension."""
        path = Path(path)
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(filename=path.name, content_type=content_type, data=path.read_bytes())


@dataclass(frozen=True)
class UploadPolicy:
    """
    Size ceilings and accepted MIME patterns per asset type.

    Values come from configuration. The defaults here only exist so a
    policy can be built in tests without a Settings object.
    """
    max_bytes: dict[AssetType, int] = field(default_factory=lambda: {
        AssetType.IMAGE: 20 * MIB,
        AssetType.VIDEO: 50 * MIB,
    })
    accepted_types: dict[AssetType, tuple[str, ...]] = field(default_factory=lambda: {
        AssetType.IMAGE: ("image/*",),
        AssetType.VIDEO: ("video/*",),
    })

    def ceiling_for(self, asset_type: AssetType) -> int:
        return self.max_bytes[asset_type]

    def accepts(self, asset_type: AssetType, content_type: str) -> bool:
        """Check a MIME type against the asset type's accepted patterns."""
        content_type = (content_type or "").split(";")[0].strip().lower()
        if not content_type:
            return False
        return any(fnmatch(content_type, pattern) for pattern in self.accepted_types[asset_type])


@dataclass(frozen=True)
class UploadFailure:
    """Terminal failure with a message fit for the user."""
    reason: FailureReason
    message: str


@dataclass(frozen=True)
class UploadState:
    """
    Snapshot of an upload session.

    The controller never mutates a state; every event produces a new one.
    That keeps the transition logic pure and easy to test.
    """
    status: UploadStatus = UploadStatus.IDLE
    progress_percent: int = 0
    result_path: Optional[str] = None
    failure: Optional[UploadFailure] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (UploadStatus.SUCCEEDED, UploadStatus.FAILED)

    @property
    def show_progress(self) -> bool:
        """Intermediate progress is only shown strictly between 0 and 100."""
        return 0 < self.progress_percent < 100


@dataclass(frozen=True)
class TransferRequest:
    """Everything the object store needs for one upload."""
    credential: UploadCredential
    public_key: str
    folder: str
    file_name: str
    content_type: str
    data: bytes = field(repr=False)
    use_unique_file_name: bool = True


@dataclass(frozen=True)
class TransferResult:
    """What the object store reports back after a successful upload."""
    file_path: str
    file_id: Optional[str] = None
    url: Optional[str] = None
