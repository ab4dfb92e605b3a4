"""Fixtures for API integration tests.

Services are handed to create_app uninitialized so the application
lifespan initializes them on the TestClient event loop and closes the
lifecycle manager on exit.
"""

import pytest
from fastapi.testclient import TestClient

from config import Settings
from infrastructure.signatures.simulated_provider import SimulatedSignatureProvider
from main import create_app
from services.document_storage_service import DocumentStorageService
from services.submission_lifecycle_manager import SubmissionLifecycleManager

WEBHOOK_SECRET = "whsec_integration"


@pytest.fixture
def app_settings(local_root):
    return Settings(
        LOCAL_STORAGE_PATH=str(local_root),
        DOCUSEAL_SIMULATE=True,
        DOCUSEAL_WEBHOOK_SECRET=WEBHOOK_SECRET,
        LOG_JSON=False,
    )


@pytest.fixture
def client(app_settings, local_root):
    storage = DocumentStorageService(config=None, local_root=str(local_root))
    manager = SubmissionLifecycleManager(
        provider=SimulatedSignatureProvider(),
        send_delay_seconds=0.05,
        open_delay_seconds=10,
    )
    app = create_app(app_settings, storage_service=storage, lifecycle_manager=manager)
    with TestClient(app) as test_client:
        yield test_client
