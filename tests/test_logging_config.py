import logging
from logging.handlers import RotatingFileHandler

from payassist.logging_config import LOG_FILES, setup_logging


def test_component_log_files(tmp_path):
    directory = setup_logging(log_dir=str(tmp_path / "logs"), log_level="debug")
    try:
        engine_logger = logging.getLogger("payassist.engine")
        file_handlers = [h for h in engine_logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert engine_logger.level == logging.DEBUG
        assert engine_logger.propagate is False

        engine_logger.info("workflow moved")
        file_handlers[0].flush()
        assert "workflow moved" in (directory / LOG_FILES["payassist.engine"]).read_text()

        # calling again replaces the handlers instead of stacking them
        setup_logging(log_dir=str(directory))
        assert len(logging.getLogger("payassist.engine").handlers) == 2
    finally:
        for name in LOG_FILES:
            logger = logging.getLogger(name)
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
            logger.propagate = True
