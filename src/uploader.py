"""
Client-side wiring for direct uploads.

Builds an UploadController from Settings: the httpx credential client
pointed at our API, and the ImageKit (or mock) object store. UI code only
needs this factory and the controller's callbacks.

Example:
    controller = create_upload_controller(
        settings,
        asset_type=AssetType.IMAGE,
        folder="/covers",
        on_success=lambda path: print("uploaded", path),
    )
    state = await controller.upload(LocalAsset.from_path("cover.png"))
"""

import logging
from typing import Callable, Optional

from .config.settings import Settings
from .core.uploads.controller import CredentialSource, ObjectStoreTransfer, UploadController
from .core.uploads.models import AssetType, UploadFailure, UploadState
from .infrastructure.credentials.client import CredentialClientConfig, HttpCredentialClient
from .infrastructure.storage.client import StorageConfig, create_object_store

logger = logging.getLogger(__name__)


def create_upload_controller(
    settings: Settings,
    asset_type: AssetType,
    folder: str = "/",
    user_id: Optional[str] = None,
    api_key: Optional[str] = None,
    credentials: Optional[CredentialSource] = None,
    store: Optional[ObjectStoreTransfer] = None,
    on_success: Optional[Callable[[str], None]] = None,
    on_error: Optional[Callable[[UploadFailure], None]] = None,
    on_state_change: Optional[Callable[[UploadState], None]] = None,
) -> UploadController:
    """
    Create a controller for one upload widget.

    `credentials` and `store` default to the HTTP credential client and the
    configured object store; pass your own to reuse connections or in tests.
    """
    if credentials is None:
        credentials = HttpCredentialClient(CredentialClientConfig(
            base_url=settings.api_base_url,
            timeout_seconds=settings.credential_request_timeout_seconds,
            api_key=api_key,
            user_id=user_id,
            folder=folder,
        ))

    if store is None:
        store = create_object_store(
            config=StorageConfig(
                upload_url=settings.imagekit_upload_url,
                timeout_seconds=settings.upload_timeout_seconds,
            ),
            mock_mode=settings.storage_mock_mode,
        )

    logger.debug(
        "Created upload controller",
        extra={"asset_type": asset_type.value, "folder": folder}
    )

    return UploadController(
        credentials=credentials,
        store=store,
        asset_type=asset_type,
        public_key=settings.imagekit_public_key,
        folder=folder,
        policy=settings.upload_policy,
        url_endpoint=settings.imagekit_url_endpoint,
        credential_timeout=settings.credential_request_timeout_seconds,
        transfer_timeout=settings.upload_timeout_seconds,
        on_success=on_success,
        on_error=on_error,
        on_state_change=on_state_change,
    )
