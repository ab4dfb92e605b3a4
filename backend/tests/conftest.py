"""Pytest fixtures for document storage and e-signature tests.

Provides reusable test fixtures for:
- Local fallback storage rooted in a temp directory
- An initialized DocumentStorageService running on local storage only
- A simulated e-signature provider and an initialized lifecycle manager
  with short timer delays

Usage:
    @pytest.mark.asyncio
    async def test_upload(storage_service):
        result = await storage_service.upload_file(b"data", "a.pdf")
        assert result.storage_type == "local"
"""

import os
import sys
from pathlib import Path

# Set environment variables BEFORE any imports so settings never pick up real credentials
for name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_S3_BUCKET_NAME", "DOCUSEAL_API_KEY"):
    os.environ.pop(name, None)
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("DOCUSEAL_SIMULATE", "true")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

import pytest

from infrastructure.signatures.simulated_provider import SimulatedSignatureProvider
from infrastructure.storage.local_storage_adapter import LocalStorageAdapter
from services.document_storage_service import DocumentStorageService
from services.submission_lifecycle_manager import SubmissionLifecycleManager

# Timer delays used by lifecycle tests (seconds)
SEND_DELAY = 0.05
OPEN_DELAY = 0.1


@pytest.fixture
def local_root(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def local_adapter(local_root):
    return LocalStorageAdapter(local_root)


@pytest.fixture
async def storage_service(local_root):
    """DocumentStorageService with no remote configured (local fallback only)."""
    service = DocumentStorageService(config=None, local_root=str(local_root), allow_fallback=True)
    await service.initialize()
    return service


@pytest.fixture
def provider():
    return SimulatedSignatureProvider()


@pytest.fixture
async def manager(provider):
    """Initialized lifecycle manager on the simulated provider with short delays."""
    lifecycle = SubmissionLifecycleManager(
        provider=provider,
        send_delay_seconds=SEND_DELAY,
        open_delay_seconds=OPEN_DELAY,
    )
    await lifecycle.initialize()
    yield lifecycle
    await lifecycle.close()
