import logging

from raffle.utils.logger import configure_logging, get_logger


def test_file_handler_respects_level(tmp_path):
    log_file = tmp_path / "logs" / "raffle.log"
    configure_logging("warning", str(log_file))
    try:
        logger = get_logger("raffle.test")
        logger.info("hidden message")
        logger.warning("shown message")
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = log_file.read_text()
        assert "shown message" in text
        assert "hidden message" not in text
        assert " - raffle.test - WARNING - " in text
    finally:
        configure_logging("INFO", "")


def test_reconfiguring_does_not_stack_handlers():
    configure_logging("INFO", "")
    before = len(logging.getLogger().handlers)
    configure_logging("DEBUG", "")
    configure_logging("INFO", "")
    assert len(logging.getLogger().handlers) == before


def test_rpc_libraries_are_quieted():
    configure_logging("DEBUG", "")
    assert logging.getLogger("web3").level == logging.WARNING
    configure_logging("INFO", "")
