"""
Client-side upload state machine.

The state machine is split in two:

- `transition(state, event)` is a pure function. It knows which moves are
  legal and what each one does to progress, result path and failure.
- `UploadController` drives it. It owns the only side effects (fetching a
  credential, streaming bytes to the store) and reaches them through the
  `CredentialSource` and `ObjectStoreTransfer` protocols, so tests can run
  the whole flow with in-memory fakes.

The controller is single-threaded cooperative: it suspends only while
awaiting the credential and while awaiting the transfer.
"""

import asyncio
import logging
import math
import secrets
from dataclasses import dataclass, replace
from pathlib import PurePosixPath
from typing import Callable, Optional, Protocol

from .models import (
    AssetType,
    FailureReason,
    LocalAsset,
    MIB,
    TransferRequest,
    TransferResult,
    UploadCredential,
    UploadFailure,
    UploadPolicy,
    UploadState,
    UploadStatus,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class InvalidTransition(Exception):
    """Raised when an event is not allowed in the current state."""
    pass


class CredentialRequestError(Exception):
    """Raised by credential sources when no credential could be obtained."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TransferError(Exception):
    """Raised by object stores when an upload does not complete."""
    pass


# ---------------------------------------------------------------------------
# Protocols (capabilities)
# ---------------------------------------------------------------------------

class CredentialSource(Protocol):
    """Something that can hand out a fresh upload credential."""

    async def fetch(self) -> UploadCredential:
        """Return a credential or raise CredentialRequestError."""
        ...


class ObjectStoreTransfer(Protocol):
    """
    The object store's upload capability.

    Implementations call `on_progress(loaded, total)` as bytes go out and
    raise TransferError on failure.
    """

    async def upload(
        self,
        request: TransferRequest,
        on_progress: ProgressCallback,
    ) -> TransferResult:
        ...


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FileSelected:
    pass


@dataclass(frozen=True)
class ValidationPassed:
    pass


@dataclass(frozen=True)
class ValidationFailed:
    reason: FailureReason
    message: str


@dataclass(frozen=True)
class CredentialReceived:
    pass


@dataclass(frozen=True)
class CredentialRequestFailed:
    message: str


@dataclass(frozen=True)
class ProgressReported:
    loaded: int
    total: int


@dataclass(frozen=True)
class TransferSucceeded:
    result_path: str


@dataclass(frozen=True)
class TransferFailed:
    message: str


@dataclass(frozen=True)
class CancelRequested:
    pass


@dataclass(frozen=True)
class TransferCancelled:
    pass


@dataclass(frozen=True)
class Reset:
    pass


UploadEvent = (
    FileSelected | ValidationPassed | ValidationFailed | CredentialReceived
    | CredentialRequestFailed | ProgressReported | TransferSucceeded
    | TransferFailed | CancelRequested | TransferCancelled | Reset
)


# ---------------------------------------------------------------------------
# Pure Transitions
# ---------------------------------------------------------------------------

def progress_percent(loaded: int, total: int) -> int:
    """round(loaded / total * 100), halves rounded up, clamped to [0, 100]."""
    if total <= 0:
        return 0
    return max(0, min(100, math.floor(loaded / total * 100 + 0.5)))


def _failed(reason: FailureReason, message: str) -> UploadState:
    return UploadState(
        status=UploadStatus.FAILED,
        failure=UploadFailure(reason=reason, message=message),
    )


# event type -> states it may arrive in
_ALLOWED_FROM: dict[type, tuple[UploadStatus, ...]] = {
    FileSelected: (UploadStatus.IDLE,),
    ValidationPassed: (UploadStatus.VALIDATING,),
    ValidationFailed: (UploadStatus.VALIDATING,),
    CredentialReceived: (UploadStatus.REQUESTING_CREDENTIAL,),
    CredentialRequestFailed: (UploadStatus.REQUESTING_CREDENTIAL,),
    ProgressReported: (UploadStatus.UPLOADING, UploadStatus.CANCELLING),
    TransferSucceeded: (UploadStatus.UPLOADING,),
    TransferFailed: (UploadStatus.UPLOADING,),
    CancelRequested: (UploadStatus.UPLOADING,),
    TransferCancelled: (UploadStatus.CANCELLING,),
}


def transition(state: UploadState, event: UploadEvent) -> UploadState:
    """
    Compute the state that follows `event`.

    Reset is accepted from anywhere. Every other event must arrive in one of
    the states listed in _ALLOWED_FROM, otherwise InvalidTransition is raised.
    """
    if isinstance(event, Reset):
        return UploadState()

    allowed = _ALLOWED_FROM.get(type(event))
    if allowed is None or state.status not in allowed:
        raise InvalidTransition(
            f"{type(event).__name__} is not allowed while {state.status.value}"
        )

    if isinstance(event, FileSelected):
        return UploadState(status=UploadStatus.VALIDATING)

    if isinstance(event, ValidationPassed):
        return replace(state, status=UploadStatus.REQUESTING_CREDENTIAL)

    if isinstance(event, ValidationFailed):
        return _failed(event.reason, event.message)

    if isinstance(event, CredentialReceived):
        return replace(state, status=UploadStatus.UPLOADING, progress_percent=0)

    if isinstance(event, CredentialRequestFailed):
        return _failed(FailureReason.AUTH_REQUEST_FAILED, event.message)

    if isinstance(event, ProgressReported):
        if state.status is UploadStatus.CANCELLING:
            return state
        percent = progress_percent(event.loaded, event.total)
        return replace(state, progress_percent=max(state.progress_percent, percent))

    if isinstance(event, TransferSucceeded):
        return UploadState(
            status=UploadStatus.SUCCEEDED,
            progress_percent=100,
            result_path=event.result_path,
        )

    if isinstance(event, TransferFailed):
        return _failed(FailureReason.UPLOAD_FAILED, event.message)

    if isinstance(event, CancelRequested):
        return replace(state, status=UploadStatus.CANCELLING)

    # TransferCancelled
    return _failed(FailureReason.CANCELLED, "Upload cancelled")


def validate_asset(
    asset: LocalAsset,
    asset_type: AssetType,
    policy: UploadPolicy,
) -> Optional[ValidationFailed]:
    """Check size and MIME type locally. Returns None when the file is acceptable."""
    if not policy.accepts(asset_type, asset.content_type):
        return ValidationFailed(
            reason=FailureReason.UNSUPPORTED_TYPE,
            message=f"Unsupported file type {asset.content_type or 'unknown'} for {asset_type.value} upload",
        )

    ceiling = policy.ceiling_for(asset_type)
    if asset.size_bytes > ceiling:
        return ValidationFailed(
            reason=FailureReason.FILE_TOO_LARGE,
            message=f"Please upload a file that is less than {ceiling // MIB}MB in size",
        )

    return None


def unique_object_name(filename: str) -> str:
    """
    Collision-avoidant object name: `<stem>_<random hex><suffix>`.

    Spaces are replaced so the name survives as a URL path segment.
    """
    path = PurePosixPath(filename.replace("\\", "/")).name or "upload"
    stem, dot, suffix = path.rpartition(".")
    if not dot:
        stem, suffix = path, ""
    stem = "_".join(stem.split()) or "upload"
    name = f"{stem}_{secrets.token_hex(6)}"
    return f"{name}.{suffix}" if suffix else name


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class UploadController:
    """
    Drives one upload at a time through the state machine.

    Callers observe the session through `state`, the optional
    `on_state_change` listener, and the terminal `on_success(path)` /
    `on_error(failure)` callbacks.
    """

    def __init__(
        self,
        credentials: CredentialSource,
        store: ObjectStoreTransfer,
        asset_type: AssetType,
        public_key: str,
        folder: str = "/",
        policy: Optional[UploadPolicy] = None,
        url_endpoint: str = "",
        credential_timeout: float = 10.0,
        transfer_timeout: float = 300.0,
        on_success: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[UploadFailure], None]] = None,
        on_state_change: Optional[Callable[[UploadState], None]] = None,
    ) -> None:
        self._credentials = credentials
        self._store = store
        self._asset_type = asset_type
        self._public_key = public_key
        self._folder = folder
        self._policy = policy or UploadPolicy()
        self._url_endpoint = url_endpoint.rstrip("/")
        self._credential_timeout = credential_timeout
        self._transfer_timeout = transfer_timeout
        self._on_success = on_success
        self._on_error = on_error
        self._on_state_change = on_state_change

        self._state = UploadState()
        self._in_flight = False
        self._transfer_task: Optional[asyncio.Future] = None

    @property
    def state(self) -> UploadState:
        return self._state

    @property
    def result_url(self) -> Optional[str]:
        """Public URL of the uploaded asset, for previews."""
        if self._state.result_path is None:
            return None
        return f"{self._url_endpoint}/{self._state.result_path.lstrip('/')}"

    def _apply(self, event: UploadEvent) -> UploadState:
        self._state = transition(self._state, event)
        if self._on_state_change is not None:
            self._on_state_change(self._state)
        return self._state

    def _fail(self, event: UploadEvent) -> UploadState:
        state = self._apply(event)

        logger.warning(
            "Upload failed",
            extra={
                "asset_type": self._asset_type.value,
                "reason": state.failure.reason.value,
                "error": state.failure.message,
            }
        )

        if self._on_error is not None:
            self._on_error(state.failure)
        return state

    def _on_progress(self, loaded: int, total: int) -> None:
        if self._state.status in (UploadStatus.UPLOADING, UploadStatus.CANCELLING):
            self._apply(ProgressReported(loaded=loaded, total=total))

    def reset(self) -> None:
        """Return to IDLE. Not allowed while an upload is in flight."""
        if self._in_flight:
            raise InvalidTransition("Cannot reset while an upload is in progress")
        self._apply(Reset())

    def cancel(self) -> bool:
        """
        Abort the in-flight transfer.

        Returns False when there is nothing to cancel (not uploading, or the
        transfer already finished).
        """
        if self._state.status is not UploadStatus.UPLOADING or self._transfer_task is None:
            return False
        if not self._transfer_task.cancel():
            return False
        self._apply(CancelRequested())
        return True

    async def upload(self, asset: LocalAsset) -> UploadState:
        """
        Run one upload from file selection to a terminal state.

        A previous terminal session is reset first. Failures end in FAILED
        with a reason; they are never raised to the caller.
        """
        if self._in_flight:
            raise InvalidTransition("An upload is already in progress")

        self._in_flight = True
        try:
            if self._state.status is not UploadStatus.IDLE:
                self._apply(Reset())
            return await self._run(asset)
        finally:
            self._in_flight = False

    async def _run(self, asset: LocalAsset) -> UploadState:
        self._apply(FileSelected())

        rejection = validate_asset(asset, self._asset_type, self._policy)
        if rejection is not None:
            return self._fail(rejection)
        self._apply(ValidationPassed())

        try:
            credential = await asyncio.wait_for(
                self._credentials.fetch(),
                timeout=self._credential_timeout,
            )
        except CredentialRequestError as e:
            return self._fail(CredentialRequestFailed(message=str(e)))
        except asyncio.TimeoutError:
            return self._fail(CredentialRequestFailed(message="Authentication request timed out"))
        self._apply(CredentialReceived())

        request = TransferRequest(
            credential=credential,
            public_key=self._public_key,
            folder=self._folder,
            file_name=unique_object_name(asset.filename),
            content_type=asset.content_type,
            data=asset.data,
        )

        logger.info(
            "Upload started",
            extra={
                "asset_type": self._asset_type.value,
                "folder": self._folder,
                "file_name": request.file_name,
                "size_bytes": asset.size_bytes,
            }
        )

        self._transfer_task = asyncio.ensure_future(
            self._store.upload(request, self._on_progress)
        )
        try:
            result = await asyncio.wait_for(self._transfer_task, timeout=self._transfer_timeout)
        except asyncio.CancelledError:
            if self._state.status is not UploadStatus.CANCELLING:
                raise
            return self._fail(TransferCancelled())
        except asyncio.TimeoutError:
            return self._fail(TransferFailed(message="Upload timed out"))
        except TransferError as e:
            return self._fail(TransferFailed(message=str(e)))
        finally:
            self._transfer_task = None

        state = self._apply(TransferSucceeded(result_path=result.file_path))

        logger.info(
            "Upload succeeded",
            extra={"asset_type": self._asset_type.value, "path": result.file_path}
        )

        if self._on_success is not None:
            self._on_success(result.file_path)
        return state
