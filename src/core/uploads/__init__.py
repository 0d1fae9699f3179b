"""
Direct upload logic.

Contains the credential protocol, the rate limiter and the client-side
upload state machine.
"""

from .controller import (
    CredentialRequestError,
    CredentialSource,
    InvalidTransition,
    ObjectStoreTransfer,
    TransferError,
    UploadController,
    transition,
)
from .credentials import CredentialIssuer, SigningMisconfigured, verify_credential
from .models import (
    AssetType,
    FailureReason,
    LocalAsset,
    UploadCredential,
    UploadFailure,
    UploadPolicy,
    UploadScope,
    UploadState,
    UploadStatus,
)
from .rate_limit import CounterStore, FixedWindowRateLimiter, RateLimitStoreError

__all__ = [
    "AssetType",
    "CounterStore",
    "CredentialIssuer",
    "CredentialRequestError",
    "CredentialSource",
    "FailureReason",
    "FixedWindowRateLimiter",
    "InvalidTransition",
    "LocalAsset",
    "ObjectStoreTransfer",
    "RateLimitStoreError",
    "SigningMisconfigured",
    "TransferError",
    "UploadController",
    "UploadCredential",
    "UploadFailure",
    "UploadPolicy",
    "UploadScope",
    "UploadState",
    "UploadStatus",
    "transition",
    "verify_credential",
]
