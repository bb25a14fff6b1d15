import logging

from pscore.config.logging_config import configure_logging


def test_configure_logging_sets_levels():
    logger = configure_logging()

    assert logger.name == "pscore"
    assert logging.getLogger("pscore.llm").level == logging.DEBUG
    assert logging.getLogger("LiteLLM").level == logging.WARNING
    # A second call does not stack another handler
    handlers = list(logging.getLogger().handlers)
    configure_logging()
    assert logging.getLogger().handlers == handlers
