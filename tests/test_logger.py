import logging

import pytest

from utils import logger as logger_module
from utils.logger import current_level, get_logger, set_level


@pytest.fixture(autouse=True)
def restore_level():
    yield
    set_level(logging.INFO)


def test_same_name_returns_same_logger():
    assert get_logger("tests.same") is get_logger("tests.same")


def test_set_level_updates_existing_loggers():
    log = get_logger("tests.existing")
    set_level("debug")
    assert log.level == logging.DEBUG
    assert all(h.level == logging.DEBUG for h in log.handlers)
    assert current_level() == logging.DEBUG


def test_new_loggers_inherit_level():
    set_level(logging.WARNING)
    assert get_logger("tests.fresh").level == logging.WARNING


def test_unknown_level_rejected():
    with pytest.raises(ValueError):
        set_level("chatty")


def test_environment_sets_default(monkeypatch):
    monkeypatch.setattr(logger_module, "_level", None)
    monkeypatch.setenv("PPG_LOG_LEVEL", "ERROR")
    assert current_level() == logging.ERROR
    monkeypatch.setenv("PPG_LOG_LEVEL", "nonsense")
    assert current_level() == logging.INFO
