"""
Object storage upload client.

Talks to the ImageKit upload API directly from the client, authorized by a
signed credential from our own API. The file bytes never pass through our
server.

Mock mode stores uploads in memory, enabling the full upload flow in
tests and local development without an ImageKit account.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import httpx

from ...core.uploads.controller import ObjectStoreTransfer, ProgressCallback, TransferError
from ...core.uploads.models import TransferRequest, TransferResult

logger = logging.getLogger(__name__)

IMAGEKIT_UPLOAD_URL = "https://upload.imagekit.io/api/v1/files/upload"
DEFAULT_CHUNK_SIZE = 256 * 1024


class StorageError(TransferError):
    """Raised when storage operations fail."""
    pass


@dataclass
class StorageConfig:
    """Configuration for the ImageKit upload API."""
    upload_url: str = IMAGEKIT_UPLOAD_URL
    timeout_seconds: float = 300.0
    chunk_size: int = DEFAULT_CHUNK_SIZE


def _join_path(folder: str, file_name: str) -> str:
    folder = "/" + folder.strip("/") if folder.strip("/") else ""
    return f"{folder}/{file_name}"


class ImageKitUploadClient:
    """
    Uploads to ImageKit with progress reporting.

    httpx has no upload progress hook, so the multipart body is encoded
    once up front and then streamed in chunks. Each chunk handed to the
    transport advances `loaded`.
    """

    def __init__(
        self,
        config: StorageConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport

    def _form_fields(self, request: TransferRequest) -> dict[str, str]:
        credential = request.credential
        return {
            "fileName": request.file_name,
            "publicKey": request.public_key,
            "signature": credential.signature,
            "expire": str(credential.expire),
            "token": credential.token,
            "folder": request.folder,
            "useUniqueFileName": "true" if request.use_unique_file_name else "false",
        }

    async def upload(
        self,
        request: TransferRequest,
        on_progress: ProgressCallback,
    ) -> TransferResult:
        """Send the file and return the stored path."""
        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout_seconds,
                transport=self._transport,
            ) as client:
                encoded = client.build_request(
                    "POST",
                    self._config.upload_url,
                    data=self._form_fields(request),
                    files={"file": (request.file_name, request.data, request.content_type)},
                )
                body = encoded.read()

                response = await client.post(
                    self._config.upload_url,
                    content=self._stream(body, on_progress),
                    headers={
                        "Content-Type": encoded.headers["Content-Type"],
                        "Content-Length": str(len(body)),
                    },
                )
        except httpx.TimeoutException as e:
            logger.error(
                "Upload timed out",
                extra={"file_name": request.file_name, "error": str(e)}
            )
            raise StorageError("Upload timed out")
        except httpx.HTTPError as e:
            logger.error(
                "Upload request failed",
                extra={"file_name": request.file_name, "error": str(e)}
            )
            raise StorageError(f"Upload failed: {e}")

        if not response.is_success:
            message = _error_message(response)
            logger.error(
                "Object store rejected upload",
                extra={
                    "file_name": request.file_name,
                    "status": response.status_code,
                    "error": message,
                }
            )
            raise StorageError(f"Upload failed with status {response.status_code}: {message}")

        try:
            payload = response.json()
            file_path = payload["filePath"]
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Unexpected upload response: {e}")

        logger.info(
            "Uploaded file",
            extra={"file_path": file_path, "size_bytes": len(request.data)}
        )

        return TransferResult(
            file_path=file_path,
            file_id=payload.get("fileId"),
            url=payload.get("url"),
        )

    async def _stream(self, body: bytes, on_progress: ProgressCallback) -> AsyncIterator[bytes]:
        total = len(body)
        sent = 0
        on_progress(0, total)
        for start in range(0, total, self._config.chunk_size):
            chunk = body[start:start + self._config.chunk_size]
            yield chunk
            sent += len(chunk)
            on_progress(sent, total)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockObjectStore:
    """
    In-memory object store.

    Mirrors what the real store enforces on its side: a credential check
    (when a checker is supplied) and single use of each token. Uploads
    are stored in a dictionary keyed by path.

    Not suitable for production, but perfect for development and testing.
    """

    def __init__(
        self,
        credential_check: Optional[Callable[[TransferRequest], bool]] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        # {path: bytes}
        self._objects: dict[str, bytes] = {}
        self._used_tokens: set[str] = set()
        self._credential_check = credential_check
        self._chunk_size = chunk_size
        logger.info("Initialized mock object store (in-memory)")

    @property
    def objects(self) -> dict[str, bytes]:
        return dict(self._objects)

    async def upload(
        self,
        request: TransferRequest,
        on_progress: ProgressCallback,
    ) -> TransferResult:
        """Store the file in memory, reporting progress chunk by chunk."""
        token = request.credential.token
        if token in self._used_tokens:
            raise StorageError("Upload credential has already been used")
        if self._credential_check is not None and not self._credential_check(request):
            raise StorageError("Invalid or expired upload credential")
        self._used_tokens.add(token)

        total = len(request.data)
        on_progress(0, total)
        for start in range(0, total, self._chunk_size):
            # yield to the event loop so cancellation can land mid-transfer
            await asyncio.sleep(0)
            on_progress(min(start + self._chunk_size, total), total)

        path = _join_path(request.folder, request.file_name)
        self._objects[path] = request.data

        logger.debug(
            "Stored upload in mock storage",
            extra={"path": path, "size_bytes": total}
        )

        return TransferResult(file_path=path, url=f"mock://storage{path}")


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_object_store(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> ObjectStoreTransfer:
    """
    Create the object store transfer based on configuration.

    Args:
        config: Upload API configuration (required if not mock_mode)
        mock_mode: If True, return the in-memory store

    Returns:
        ObjectStoreTransfer implementation (ImageKit or Mock)
    """
    if mock_mode:
        return MockObjectStore()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return ImageKitUploadClient(config)
