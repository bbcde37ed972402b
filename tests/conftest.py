import pytest
from loguru import logger


@pytest.fixture
def log_lines():
    lines: list[str] = []
    logger.enable("birdlink")
    handler_id = logger.add(lambda msg: lines.append(msg.record["message"]), level="DEBUG")
    yield lines
    logger.remove(handler_id)
