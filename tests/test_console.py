"""Tests for the console module."""

import pytest
from rich.console import Console

from certkeeper.console import ConsoleManager


@pytest.fixture
def test_console() -> ConsoleManager:
    manager = ConsoleManager()
    manager.console = Console(record=True, width=100, force_terminal=False)
    manager.error_console = Console(
        record=True, stderr=True, width=100, force_terminal=False
    )
    return manager


def test_console_initialization() -> None:
    console_manager = ConsoleManager()
    assert isinstance(console_manager.console, Console)
    assert isinstance(console_manager.error_console, Console)
    assert console_manager.error_console.stderr


def test_console_print_methods(test_console: ConsoleManager) -> None:
    test_console.print("Test message")
    test_console.print_raw("[not markup]", end="\n")
    test_console.print_success("Backed up")

    output = test_console.console.export_text()
    assert "Test message" in output
    assert "[not markup]" in output
    assert "✓ Backed up" in output


def test_console_error_output(test_console: ConsoleManager) -> None:
    test_console.print_error("certbot failed")
    test_console.print_warning("manual mode")
    test_console.print_note("Check the log folder", error=ValueError("boom"))

    output = test_console.error_console.export_text()
    assert "Error: certbot failed" in output
    assert "Warning: manual mode" in output
    assert "Note: Check the log folder: boom" in output
    assert test_console.console.export_text() == ""


def test_print_status_table(test_console: ConsoleManager) -> None:
    test_console.print_status_table(
        "Certificate status: example.com",
        [("Key material", "available"), ("Backup", "not configured")],
    )

    output = test_console.console.export_text()
    assert "Certificate status: example.com" in output
    assert "Key material" in output
    assert "not configured" in output
