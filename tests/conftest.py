import pytest

from tests.mocks.batching import FakeBatchAPI


@pytest.fixture(autouse=True)
def test_set_env(monkeypatch):
    for name in (
        "BATCHSTREAM_ACCESS_TOKEN",
        "BATCHSTREAM_BATCH_SIZE",
        "BATCHSTREAM_USER_QUOTA",
        "BATCHSTREAM_FILTER_ERRORS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_api() -> FakeBatchAPI:
    return FakeBatchAPI()
