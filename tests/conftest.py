import logging

import pytest

from authentication.token_store import MemoryStorage, TokenStore
from elfsquad.constants import LOGGER


@pytest.fixture
def token_store() -> TokenStore:
    return TokenStore(MemoryStorage())


@pytest.fixture
def auth_logs(caplog) -> pytest.LogCaptureFixture:
    caplog.set_level(logging.DEBUG, logger=LOGGER.name)
    return caplog
