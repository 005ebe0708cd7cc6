import asyncio
import logging

import pytest

from nexusflow.events import EventLevel, EventLog, LoggingObserver


class _Recorder:
    def __init__(self):
        self.events = []

    def on_event(self, event):
        self.events.append(event)


class _Broken:
    def on_event(self, event):
        raise RuntimeError("observer down")


def test_events_are_ordered_and_pushed_to_observers():
    recorder = _Recorder()
    log = EventLog("run-1", [_Broken(), recorder])

    log.info("Starting Workflow Execution...")
    log.success("Trigger Activated", "trigger")
    log.error("MISSING SECRET: token", "send")

    assert [event.seq for event in log] == [0, 1, 2]
    assert [event.level for event in recorder.events] == [
        EventLevel.INFO,
        EventLevel.SUCCESS,
        EventLevel.ERROR,
    ]
    assert [event.message for event in log.for_step("send")] == ["MISSING SECRET: token"]
    assert len({event.id for event in log}) == 3


@pytest.mark.asyncio
async def test_subscribe_replays_then_streams_until_closed():
    log = EventLog("run-1")
    log.info("first")
    received = []

    async def consume():
        async for event in log.subscribe():
            received.append(event.message)

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    log.info("second")
    log.close()
    await asyncio.wait_for(consumer, timeout=1)

    assert received == ["first", "second"]
    assert log.closed


@pytest.mark.asyncio
async def test_subscribe_after_close_replays_everything():
    log = EventLog("run-1")
    log.info("only")
    log.close()
    assert [event.message async for event in log.subscribe()] == ["only"]


def test_logging_observer_maps_levels(caplog):
    log = EventLog("run-1", [LoggingObserver()])
    with caplog.at_level(logging.INFO, logger="nexusflow.events"):
        log.success("Completed: send", "send")
        log.error("boom", "send")

    levels = [record.levelno for record in caplog.records]
    assert levels == [logging.INFO, logging.ERROR]
    assert "run=run-1 [send] success: Completed: send" in caplog.records[0].getMessage()
