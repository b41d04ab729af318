import io

import pytest

from netscan.utils.logger import Logger


@pytest.fixture
def quiet_logger() -> Logger:
    return Logger("test", stream=io.StringIO())
