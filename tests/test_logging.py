import logging

import pytest

from mixion_sdk.utils.logging import setup_logging


@pytest.fixture(autouse=True)
def _restore_level():
    logger = logging.getLogger("mixion")
    level = logger.level
    yield
    logger.setLevel(level)


@pytest.mark.parametrize(
    "level, expected",
    [
        ("debug", logging.DEBUG),
        ("WARNING", logging.WARNING),
        (logging.ERROR, logging.ERROR),
        ("bogus", logging.INFO),
        (None, logging.INFO),
    ],
)
def test_setup_logging_sets_package_level(level, expected):
    logger = setup_logging(level)
    assert logger.name == "mixion"
    assert logger.level == expected


def test_area_loggers_inherit_package_level(caplog):
    setup_logging("warning")
    assert not logging.getLogger("mixion.balances").isEnabledFor(logging.INFO)
    with caplog.at_level(logging.DEBUG, logger="mixion"):
        logging.getLogger("mixion.session").debug("chain switched")
    assert [r.name for r in caplog.records] == ["mixion.session"]
