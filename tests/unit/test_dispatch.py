import asyncio

import pytest

from helpers import FakeActivities, action, trigger, workflow
from nexusflow.context import RunContext
from nexusflow.contracts import RetryPolicy, StepStatus
from nexusflow.credentials import InMemorySecretStore, SecretResolver
from nexusflow.dispatch import ActivityDispatcher, merge_upstream, parse_duration
from nexusflow.errors import ActivityFailure
from nexusflow.events import EventLevel
from nexusflow.graph import build_graph

FAST = RetryPolicy(max_attempts=3, per_attempt_timeout=1.0, backoff_base=0, backoff_jitter=0)


def _run(definition, payload=None) -> RunContext:
    return RunContext("run-1", build_graph(definition), payload)


def _dispatcher(activities, secrets=None, **kwargs) -> ActivityDispatcher:
    kwargs.setdefault("retry_policy", FAST)
    return ActivityDispatcher(
        activities, SecretResolver(InMemorySecretStore(secrets or {})), **kwargs
    )


@pytest.mark.parametrize(
    "value, expected",
    [
        (2, 2.0),
        (0.5, 0.5),
        ("250ms", 0.25),
        ("3s", 3.0),
        ("2m", 120.0),
        ("1h", 3600.0),
        ("7", 7.0),
        (None, 5.0),
        ("soon", 5.0),
        (-1, 5.0),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == pytest.approx(expected)


def test_merge_upstream_later_parent_wins():
    merged = merge_upstream([{"a": 1, "shared": "first"}, {"b": 2, "shared": "second"}])
    assert merged == {"a": 1, "b": 2, "shared": "second"}


def test_merge_upstream_skips_non_mappings_and_is_deterministic():
    parents = [{"a": 1}, "plain text", None, [1, 2], {"a": 3}]
    assert merge_upstream(parents) == {"a": 3}
    assert merge_upstream(parents) == merge_upstream(parents)
    assert merge_upstream([]) == {}


@pytest.mark.asyncio
async def test_trigger_result_carries_payload_and_start_time():
    run = _run(workflow([trigger()]), {"x": 1})
    outcome = await _dispatcher(FakeActivities()).invoke(run.graph.trigger, {}, run)

    assert outcome.ok
    assert outcome.result["x"] == 1
    assert "startedAt" in outcome.result
    assert [(e.level, e.message) for e in run.events] == [(EventLevel.SUCCESS, "Trigger Activated")]


@pytest.mark.asyncio
async def test_external_action_receives_parameters_secret_and_upstream():
    activities = FakeActivities()
    run = _run(
        workflow(
            [trigger(), action("send", parameters={"y": 2}, credentialId="token")],
            [("trigger", "send")],
        )
    )
    dispatcher = _dispatcher(activities, {"token": "s3cret"})

    outcome = await dispatcher.invoke(run.graph.step("send"), {"x": 1}, run)

    assert outcome.ok
    assert outcome.result["input_params"] == {"y": 2}
    assert outcome.result["upstream_data"] == {"x": 1}
    assert activities.external_calls[0]["secret"] == "s3cret"
    events = list(run.events)
    assert len(events) == 1
    assert events[0].message == "Completed: send"
    assert events[0].step_id == "send"


@pytest.mark.asyncio
async def test_missing_credential_fails_before_any_external_call():
    activities = FakeActivities()
    run = _run(
        workflow([trigger(), action("send", credentialId="absent")], [("trigger", "send")])
    )

    outcome = await _dispatcher(activities).invoke(run.graph.step("send"), {}, run)

    assert outcome.status is StepStatus.FAILED
    assert outcome.error_code == "missing_credential"
    assert outcome.error.startswith("MISSING SECRET: absent")
    assert activities.external_calls == []
    assert [e.level for e in run.events] == [EventLevel.ERROR]


@pytest.mark.asyncio
async def test_transient_failures_are_retried_until_success():
    calls = []

    def flaky(parameters, upstream):
        calls.append(1)
        if len(calls) < 3:
            raise ActivityFailure("temporarily unavailable")
        return {"ok": True}

    run = _run(workflow([trigger(), action("a", "svc", "flaky")], [("trigger", "a")]))
    outcome = await _dispatcher(FakeActivities({"svc.flaky": flaky})).invoke(
        run.graph.step("a"), {}, run
    )

    assert outcome.ok
    assert outcome.result == {"ok": True}
    assert outcome.attempts == 3
    assert len(run.events) == 1


@pytest.mark.asyncio
async def test_permanent_failure_is_not_retried():
    calls = []

    def rejected(parameters, upstream):
        calls.append(1)
        raise ActivityFailure("invalid channel", retryable=False)

    run = _run(workflow([trigger(), action("a", "svc", "post")], [("trigger", "a")]))
    outcome = await _dispatcher(FakeActivities({"svc.post": rejected})).invoke(
        run.graph.step("a"), {}, run
    )

    assert outcome.error == "invalid channel"
    assert outcome.error_code == "activity_failure"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_unexpected_exception_is_rendered_readably():
    def broken(parameters, upstream):
        raise KeyError("channel")

    run = _run(workflow([trigger(), action("a", "svc", "post")], [("trigger", "a")]))
    dispatcher = _dispatcher(
        FakeActivities({"svc.post": broken}),
        retry_policy=RetryPolicy(max_attempts=1, backoff_base=0, backoff_jitter=0),
    )
    outcome = await dispatcher.invoke(run.graph.step("a"), {}, run)

    assert outcome.error == "KeyError: 'channel'"
    assert "Traceback" not in outcome.error


@pytest.mark.asyncio
async def test_step_retry_policy_overrides_default_and_times_out():
    async def hang(parameters, upstream):
        await asyncio.sleep(10)

    step = action("slow", "svc", "hang")
    step["retry"] = {"maxAttempts": 2, "perAttemptTimeout": 0.05, "backoffBase": 0, "backoffJitter": 0}
    run = _run(workflow([trigger(), step], [("trigger", "slow")]))

    outcome = await _dispatcher(FakeActivities({"svc.hang": hang})).invoke(
        run.graph.step("slow"), {}, run
    )

    assert outcome.error_code == "timeout"
    assert outcome.attempts == 2
    assert "timed out" in outcome.error


@pytest.mark.asyncio
async def test_wait_step_uses_configured_duration():
    run = _run(
        workflow(
            [trigger(), {"id": "pause", "kind": "wait", "config": {"duration": "10ms"}}],
            [("trigger", "pause")],
        )
    )
    outcome = await _dispatcher(FakeActivities()).invoke(run.graph.step("pause"), {}, run)
    assert outcome.result == {"waited": True}
    assert run.events.for_step("pause")[0].message == "Completed: pause"
