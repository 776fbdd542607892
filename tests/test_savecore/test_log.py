import logging
import pytest
from savecore.log import LOGGER_NAMES, configure_logging


@pytest.fixture
def restore_loggers():
    saved = {}
    for name in LOGGER_NAMES:
        lg = logging.getLogger(name)
        saved[name] = (lg.level, list(lg.handlers), lg.propagate)
    yield
    for name, (level, handlers, propagate) in saved.items():
        lg = logging.getLogger(name)
        for handler in list(lg.handlers):
            lg.removeHandler(handler)
            handler.close()
        for handler in handlers:
            lg.addHandler(handler)
        lg.setLevel(level)
        lg.propagate = propagate


def test_configure_logging_to_file(tmp_path, restore_loggers):
    log_file = tmp_path / "logs" / "save.log"

    loggers = configure_logging(logging.DEBUG, log_file)
    logging.getLogger("savekit.save.manager").debug("slot 2 saved")
    for lg in loggers:
        for handler in lg.handlers:
            handler.flush()

    assert [lg.name for lg in loggers] == ["savecore", "savekit"]
    assert all(lg.level == logging.DEBUG for lg in loggers)
    text = log_file.read_text()
    assert "[DEBUG] savekit.save.manager: slot 2 saved" in text

def test_configure_logging_replaces_handlers(restore_loggers):
    configure_logging()
    configure_logging()

    assert len(logging.getLogger("savecore").handlers) == 1
