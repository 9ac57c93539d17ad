import logging

import pytest

from order_tracking.services.log_buffer import (
    LogBuffer,
    LogBufferHandler,
    configure_logging,
    source_of,
)


@pytest.mark.parametrize(
    "name, source",
    [
        ("order_tracking.engine.tracking_coordinator", "app"),
        ("uvicorn.access", "access"),
        ("sqlalchemy.engine.Engine", "sql"),
        ("aiosqlite", "sql"),
    ],
)
def test_source_routing(name, source):
    assert source_of(name) == source


def _record(name: str, level: int, msg: str) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


def test_buffer_filters():
    buffer = LogBuffer()
    handler = LogBufferHandler(buffer)
    handler.emit(_record("order_tracking.api", logging.INFO, "joined"))
    handler.emit(_record("uvicorn.access", logging.INFO, "GET /api/health"))
    handler.emit(_record("order_tracking.api", logging.WARNING, "cache down"))

    assert [e["message"] for e in buffer.get_entries(source="app")] == ["joined", "cache down"]
    assert [e["message"] for e in buffer.get_entries(min_level="warning")] == ["cache down"]
    assert [e["seq"] for e in buffer.get_entries(since_seq=1)] == [2, 3]
    assert [e["message"] for e in buffer.get_entries(limit=1)] == ["cache down"]
    assert buffer.latest_seq == 3

    buffer.clear()
    assert buffer.get_entries() == []
    assert buffer.latest_seq == 3


def test_ring_buffer_is_bounded():
    buffer = LogBuffer(max_entries=2)
    for i in range(5):
        buffer.append({"source": "app", "levelno": logging.INFO, "message": str(i)})
    assert [e["message"] for e in buffer.get_entries()] == ["3", "4"]


def test_configure_logging_writes_per_source_files(tmp_path):
    root = logging.getLogger()
    before, level = list(root.handlers), root.level
    try:
        configure_logging("INFO", tmp_path)
        installed = len(root.handlers)
        log_dir = configure_logging("INFO", tmp_path)
        # Reconfiguring replaces, not stacks, the installed handlers.
        assert len(root.handlers) == installed

        logging.getLogger("order_tracking.test").info("order 7 delivered")
        logging.getLogger("uvicorn.access").info("GET /ws")
        for handler in root.handlers:
            handler.flush()

        assert "order 7 delivered" in (log_dir / "app.log").read_text()
        assert "GET /ws" in (log_dir / "access.log").read_text()
        assert "GET /ws" not in (log_dir / "app.log").read_text()
        assert (log_dir / "sql.log").exists()
    finally:
        root.setLevel(level)
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
