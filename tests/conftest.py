"""Pytest configuration and fixtures for cloudvault.

HTTP tests run the app in-process through httpx ASGITransport with a local
storage backend rooted in a temp directory. Repository tests under
tests/integration skip when DATABASE_URL is not configured.
"""

import os
import tempfile

import pytest
from httpx import ASGITransport, AsyncClient

# Keep the default storage root out of /var during tests.
os.environ.setdefault("STORAGE_ROOT", tempfile.mkdtemp(prefix="cloudvault-test-"))

from cloudvault.application.services import (  # noqa: E402
    ObjectKeyGenerator,
    QuotaPolicy,
    SignedAccessIssuer,
    UploadAdmissionController,
    UsageLedger,
)
from cloudvault.application.use_cases.files import (  # noqa: E402
    FileDownloadService,
    FileRemovalService,
    FileUploadService,
)
from cloudvault.core.config import get_settings  # noqa: E402
from cloudvault.domain.enums import Plan  # noqa: E402
from cloudvault.domain.value_objects import PlanLimits  # noqa: E402
from cloudvault.infrastructure.external.storage.local_storage import (  # noqa: E402
    LocalStorageBackend,
)
from tests.fakes import (  # noqa: E402
    FakeLedgerDriftRepository,
    FakeStoredFileRepository,
    FakeSubscriptionRepository,
    FakeUserQuotaRepository,
)

# Small plan table so boundaries are easy to read in tests.
TEST_PLAN_LIMITS = {
    Plan.FREE: PlanLimits(total_storage_bytes=1000, max_upload_bytes=100),
    Plan.PRO: PlanLimits(total_storage_bytes=10_000, max_upload_bytes=1000),
    Plan.BUSINESS: PlanLimits(total_storage_bytes=100_000, max_upload_bytes=10_000),
}


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Clear cached settings around each test so env overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def local_storage(tmp_path) -> LocalStorageBackend:
    return LocalStorageBackend(storage_root=str(tmp_path / "objects"), chunk_size=16)


@pytest.fixture
def subscription_repo() -> FakeSubscriptionRepository:
    return FakeSubscriptionRepository()


@pytest.fixture
def quota_repo(file_repo) -> FakeUserQuotaRepository:
    return FakeUserQuotaRepository(file_repo)


@pytest.fixture
def file_repo() -> FakeStoredFileRepository:
    return FakeStoredFileRepository()


@pytest.fixture
def drift_repo() -> FakeLedgerDriftRepository:
    return FakeLedgerDriftRepository()


@pytest.fixture
def quota_policy(subscription_repo, quota_repo) -> QuotaPolicy:
    return QuotaPolicy(
        plan_limits=TEST_PLAN_LIMITS,
        subscription_repo=subscription_repo,
        quota_repo=quota_repo,
        lookup_timeout=1.0,
    )


@pytest.fixture
def admission(quota_policy) -> UploadAdmissionController:
    return UploadAdmissionController(quota_policy, chunk_size=16)


@pytest.fixture
def ledger(quota_repo, drift_repo) -> UsageLedger:
    return UsageLedger(quota_repo, drift_repo)


@pytest.fixture
def key_generator() -> ObjectKeyGenerator:
    return ObjectKeyGenerator(clock_ms=lambda: 1700000000000)


@pytest.fixture
def access_issuer(local_storage) -> SignedAccessIssuer:
    return SignedAccessIssuer(local_storage)


@pytest.fixture
def upload_service(
    local_storage, admission, ledger, key_generator, file_repo, access_issuer
) -> FileUploadService:
    return FileUploadService(
        storage=local_storage,
        admission=admission,
        ledger=ledger,
        key_generator=key_generator,
        file_repo=file_repo,
        access_issuer=access_issuer,
        upload_timeout=5.0,
    )


@pytest.fixture
def download_service(local_storage, access_issuer) -> FileDownloadService:
    return FileDownloadService(local_storage, access_issuer)


@pytest.fixture
def removal_service(local_storage, ledger, file_repo) -> FileRemovalService:
    return FileRemovalService(local_storage, ledger, file_repo=file_repo)


@pytest.fixture
async def client(local_storage) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI) using the temp local backend."""
    from cloudvault.main import create_app

    app = create_app()
    app.state.storage = local_storage
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

