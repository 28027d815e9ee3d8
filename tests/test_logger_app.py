from __future__ import annotations

from typing import List

import pytest

from config_manager import AppSettings
from conftest import FakePorts
from event_bus import DataRecord
from header_registry import DEFAULT_HEADERS
from logger_app import ArduinoLoggerApp


@pytest.fixture
def settings(tmp_path):
    return AppSettings(
        ports=("COM1", "COM2"),
        log_dir=tmp_path / "Log",
        headers_path=tmp_path / "cfg" / "headers_config.json",
    )


@pytest.fixture
def ports():
    return FakePorts({"COM2": "live"})


@pytest.fixture
def app(settings, scheduler, ports):
    app = ArduinoLoggerApp(settings, scheduler, connection_factory=ports)
    yield app
    app.writer.close()


def test_start_creates_log_and_connects(app, scheduler, settings):
    app.start()
    scheduler.advance(1.0)

    assert app.is_connected
    assert app.writer.current_path.parent == settings.log_dir
    assert app.writer.current_path.exists()
    assert "✅ ARDUINO FOUND ON COM2!" in app.log_messages
    assert app.log_messages.index("Checking COM1...") < app.log_messages.index("Checking COM2...")


def test_data_and_noise_are_routed(app, scheduler, ports):
    records: List[DataRecord] = []
    logs: List[str] = []
    app.bus.subscribe_data(records.append)
    app.bus.subscribe_log(logs.append)

    app.start()
    scheduler.advance(1.0)
    ports.latest.send("12|34|56")
    ports.latest.send("Calibrating...")
    scheduler.run_pending()
    app.writer.close()

    assert [r.raw_line for r in records] == ["12|34|56"]
    assert records[0].fields == ("12", "34", "56")
    assert records[0].port == "COM2"
    assert app.state.last_record == records[0]
    assert 'Ignored non-numeric data: "Calibrating..."' in logs

    rows = app.writer.current_path.read_text(encoding="utf-8").splitlines()
    assert rows[0] == ",".join(DEFAULT_HEADERS)
    assert len(rows) == 2
    assert rows[1].endswith(",12,34,56")


def test_header_commands(app):
    assert app.get_headers() == list(DEFAULT_HEADERS)

    result = app.save_headers(["x", "Temp"])
    assert result.success
    assert app.get_headers() == ["Timestamp", "Temp"]

    result = app.save_headers(["Timestamp"])
    assert not result.success
    assert app.get_headers() == ["Timestamp", "Temp"]

    assert app.reset_headers().success
    assert app.get_headers() == list(DEFAULT_HEADERS)


def test_header_change_applies_to_next_file_only(app, scheduler):
    app.start()
    first_header = app.writer.current_path.read_text(encoding="utf-8").splitlines()[0]
    app.save_headers(["Timestamp", "Temp"])
    assert app.writer.current_path.read_text(encoding="utf-8").splitlines()[0] == first_header


def test_log_file_commands(app, tmp_path):
    assert app.get_current_log_info() is None
    assert not app.save_current_log_as(tmp_path / "out.csv").success

    app.start()
    app.send_data("1|2").result(timeout=5)

    info = app.get_current_log_info()
    assert info is not None
    assert info.entries == 1
    assert [f.name for f in app.get_all_log_files()] == [info.name]

    result = app.save_current_log_as(tmp_path / "out.csv")
    assert result.success
    assert (tmp_path / "out.csv").read_text(encoding="utf-8") == info.full_path.read_text(encoding="utf-8")

    result = app.save_named_log_as(info.name, tmp_path / "named.csv")
    assert result.success
    assert result.original_file == info.name

    missing = app.save_named_log_as("arduino_logs_1999-01-01.csv", tmp_path / "x.csv")
    assert not missing.success


def test_log_messages_accumulate(app):
    app.log("one")
    app.log("two")
    assert app.log_messages[-2:] == ["one", "two"]
