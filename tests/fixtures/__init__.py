"""Shared test fixtures for the TPS meter test suite.

Available Fixtures
==================

Host client mocks (from tests/fixtures/clients.py)
--------------------------------------------------

Classes:
    RecordingSink: Sink that records every Notice, optionally failing.
    MockTuiClient: Duck-typed host client exposing ``tui.show_toast``,
        ``tui.publish`` and ``toast.info``/``toast.success``; each can be
        switched to raise.

Fixtures:
    recording_sink: A fresh RecordingSink.
    mock_client: A fresh MockTuiClient.

Configuration (from tests/fixtures/config.py)
---------------------------------------------

Fixtures:
    config_sandbox: Clean TPS_METER_* environment, cwd and home moved into
        a temporary directory so no real config file is read.
    make_config: Factory building TpsMeterConfig with keyword overrides
        inside the sandbox.

Event builders (from tests/fixtures/events.py)
----------------------------------------------

Plain functions, imported directly:
    part_event, message_event, idle_event
"""
