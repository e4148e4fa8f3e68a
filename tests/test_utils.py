"""Tests for utility functions."""

import pytest
import logging
from pathlib import Path
import tempfile

from funcenrich.utils import setup_logging, ensure_dir

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)

@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers and level set on the package logger during a test."""
    yield
    logger = logging.getLogger("funcenrich")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)

def flush(logger):
    for handler in logger.handlers:
        handler.flush()

def test_setup_logging(temp_dir):
    """Test setting up logging configuration."""
    log_dir = temp_dir / "logs"

    logger = setup_logging(log_dir)
    assert (log_dir / "pipeline.log").exists()
    assert logger.name == "funcenrich"
    assert logger.level == logging.INFO
    assert logger.propagate

    # Test with custom level
    setup_logging(log_dir, level=logging.DEBUG)
    assert logger.level == logging.DEBUG

def test_setup_logging_writes_module_records(temp_dir):
    """Test that records of package modules reach the log file."""
    log_dir = temp_dir / "logs"
    logger = setup_logging(log_dir)

    logging.getLogger("funcenrich.ora").info("Testing 12 terms")
    logging.getLogger("funcenrich.bootstrap").debug("Drawing 1000 bootstrap sets of size 3")
    logging.getLogger("elsewhere").warning("Not ours")
    flush(logger)

    content = (log_dir / "pipeline.log").read_text()
    assert "Logging to" in content
    assert "funcenrich.ora - INFO - Testing 12 terms" in content
    assert "Drawing 1000 bootstrap sets" not in content
    assert "Not ours" not in content

def test_setup_logging_replaces_own_handlers(temp_dir):
    """Test that repeated setup does not duplicate output."""
    logger = setup_logging(temp_dir / "first")
    logger = setup_logging(temp_dir / "second")

    assert len(logger.handlers) == 2
    file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    assert [Path(h.baseFilename).parent.name for h in file_handlers] == ["second"]

    logging.getLogger("funcenrich.pipeline").info("Saving results")
    flush(logger)

    assert (temp_dir / "second" / "pipeline.log").read_text().count("Saving results") == 1
    assert "Saving results" not in (temp_dir / "first" / "pipeline.log").read_text()

def test_setup_logging_keeps_foreign_handlers(temp_dir):
    """Test that handlers added by someone else survive a new setup."""
    logger = logging.getLogger("funcenrich")
    foreign = logging.NullHandler()
    logger.addHandler(foreign)

    setup_logging(temp_dir / "logs")
    setup_logging(temp_dir / "logs")

    assert foreign in logger.handlers
    assert len(logger.handlers) == 3

def test_setup_logging_without_dir():
    """Test console-only logging."""
    logger = setup_logging()

    assert len(logger.handlers) == 1
    assert not isinstance(logger.handlers[0], logging.FileHandler)

def test_setup_logging_nested_dir(temp_dir):
    """Test setting up logging in a nested directory."""
    log_dir = temp_dir / "nested" / "logs"
    setup_logging(log_dir)
    assert log_dir.exists()
    assert (log_dir / "pipeline.log").exists()

def test_ensure_dir(temp_dir):
    """Test directory creation."""
    test_dir = temp_dir / "test_dir"
    result = ensure_dir(test_dir)
    assert result == test_dir
    assert test_dir.is_dir()

    # Test with existing directory
    ensure_dir(test_dir)  # Should not raise error

def test_ensure_dir_accepts_str(temp_dir):
    """Test that a string path is converted."""
    result = ensure_dir(str(temp_dir / "nested" / "test_dir"))
    assert isinstance(result, Path)
    assert result.is_dir()

def test_ensure_dir_file_exists(temp_dir):
    """Test behavior when a file exists at the target path."""
    test_path = temp_dir / "test_file"
    test_path.touch()

    with pytest.raises(FileExistsError):
        ensure_dir(test_path)
