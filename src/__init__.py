"""
MediaDrop - direct-to-storage media uploads with signed credentials.

This package contains the complete application:
- core: Framework-agnostic upload protocol and state machine
- infrastructure: Counter store, credential client and object store integrations
- api: FastAPI routes and dependencies
- config: Application configuration
- uploader: Client-side wiring of the upload controller
"""

__version__ = "0.1.0"
