"""
Pytest configuration and fixtures.

Add any shared fixtures or pytest configuration here.
"""

import logging
import sys

import pytest

from pyrelay._internal.serialization_registry import SerializerRegistry


def pytest_configure(config):
    """Configure pytest with custom settings."""
    # Set up logging
    log_level = logging.DEBUG if config.getoption("--debug-pyrelay") else logging.INFO

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Set specific logger levels
    logging.getLogger("pyrelay").setLevel(log_level)
    logging.getLogger("asyncio").setLevel(log_level)

    # If custom log file is specified, add file handler
    custom_log_file = config.getoption("--pyrelay-log-file")
    if custom_log_file:
        file_handler = logging.FileHandler(custom_log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            )
        )
        logging.getLogger().addHandler(file_handler)


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--debug-pyrelay",
        action="store_true",
        default=False,
        help="Enable debug logging for pyrelay (shows every relayed message)",
    )
    parser.addoption(
        "--pyrelay-log-file",
        action="store",
        default=None,
        help="Log pyrelay debug output to specified file",
    )


@pytest.fixture(autouse=True)
def _clean_serializer_registry():
    """Keep custom serializers registered by one test from leaking into others."""
    SerializerRegistry.get_instance().clear()
    yield
    SerializerRegistry.get_instance().clear()


@pytest.fixture(autouse=True)
def _no_debug_env(monkeypatch):
    monkeypatch.delenv("PYRELAY_DEBUG_RPC", raising=False)
