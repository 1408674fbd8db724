import logging

import pytest

from apigee_discovery.utils.logging import ROOT_LOGGER


@pytest.fixture(autouse=True)
def reset_agent_logger():
    """Drop handlers installed by a test so later tests log nowhere stale."""
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
