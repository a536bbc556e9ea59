import asyncio

import pytest

from exam_prep_cbt.errors import ConfigurationError, ProviderError
from exam_prep_cbt.models.session_state import IntegrityEventType, SessionStatus, SubmitTrigger
from exam_prep_cbt.services.session_factory import create_exam_run, exam_duration_seconds

from conftest import FakeGrader, FakeProvider, make_config, make_questions


@pytest.mark.parametrize("n, seconds", [(1, 120), (2, 180), (10, 900), (15, 1380), (200, 18000)])
def test_duration_policy(n, seconds):
    assert exam_duration_seconds(n) == seconds


@pytest.mark.parametrize("n", [1, 3, 10, 25])
def test_created_session_has_n_questions_and_duration(n):
    run = asyncio.run(create_exam_run(make_config(n), FakeProvider(), FakeGrader(), tick_seconds=None))
    assert run.session.total == n
    assert run.session.remaining_seconds == exam_duration_seconds(n)
    assert run.machine.status is SessionStatus.ACTIVE


@pytest.mark.parametrize(
    "overrides",
    [{"question_count": 0}, {"question_count": 201}, {"stream_id": ""}],
)
def test_invalid_config_is_rejected_before_fetch(overrides):
    provider = FakeProvider()
    with pytest.raises(ConfigurationError):
        asyncio.run(create_exam_run(make_config(**overrides), provider, FakeGrader()))
    assert provider.calls == []


def test_empty_provider_response_is_provider_error():
    with pytest.raises(ProviderError):
        asyncio.run(create_exam_run(make_config(3), FakeProvider(questions=[]), FakeGrader()))


def test_provider_failure_propagates():
    provider = FakeProvider(error=ProviderError("backend down"))
    with pytest.raises(ProviderError, match="backend down"):
        asyncio.run(create_exam_run(make_config(3), provider, FakeGrader()))


def test_hung_provider_times_out():
    class HangingProvider:
        async def fetch_questions(self, config):
            await asyncio.Event().wait()

    with pytest.raises(ProviderError):
        asyncio.run(create_exam_run(make_config(3), HangingProvider(), FakeGrader(), timeout=0.01))


def test_short_question_set_sizes_the_session():
    provider = FakeProvider(questions=make_questions(4))
    run = asyncio.run(create_exam_run(make_config(10), provider, FakeGrader(), tick_seconds=None))
    assert run.session.total == 4
    assert run.session.remaining_seconds == 360


def test_end_to_end_timer_expiry():
    """10문항: 8개 응답, 2개 표시, 시간 만료 → 강제 제출 → 채점 결과."""
    grader = FakeGrader()
    reports = []

    async def scenario():
        run = await create_exam_run(
            make_config(10), FakeProvider(), grader, on_result=reports.append, tick_seconds=None,
        )
        machine = run.machine
        async with machine:
            for i in range(8):
                machine.navigate_to(i)
                machine.select_answer(f"q{i}", 0 if i < 6 else 1)
            machine.toggle_flag("q8")
            machine.toggle_flag("q9")
            while not machine.clock.expired:
                machine.clock.tick()
            await run.packager.wait_forced()
        return run

    run = asyncio.run(scenario())

    payload = grader.payloads[0]
    assert len(grader.payloads) == 1
    assert payload.submit_trigger is SubmitTrigger.TIMER
    assert len(payload.answers) == 10
    assert sum(1 for a in payload.answers if a.selected_option == -1) == 2
    assert payload.cheating_attempts == []
    assert payload.tab_switch_count == 0
    assert run.machine.status is SessionStatus.COMPLETED

    report = reports[0]
    summary = report.summary
    assert summary.correct_answers == 6
    assert summary.percentage == summary.correct_answers / summary.total_questions * 100
    assert report.accuracy == 60.0
    assert report.grade == "B"


def test_abandonment_sends_nothing_and_stops_resources():
    grader = FakeGrader()

    async def scenario():
        run = await create_exam_run(make_config(5), FakeProvider(), grader, tick_seconds=0.001)
        machine = run.machine
        machine.start()
        machine.select_answer("q0", 2)
        await asyncio.sleep(0.01)
        machine.abandon()
        remaining = machine.session.remaining_seconds
        log_size = len(machine.session.integrity_log)

        await asyncio.sleep(0.02)
        delivered = machine.signal_source.emit(IntegrityEventType.VISIBILITY_LOST, "late")
        return run, remaining, log_size, delivered

    run, remaining, log_size, delivered = asyncio.run(scenario())
    machine = run.machine
    assert grader.payloads == []
    assert machine.status is SessionStatus.ABANDONED
    assert not machine.clock.running
    assert not machine.monitor.running
    assert machine.session.remaining_seconds == remaining
    assert delivered == 0
    assert len(machine.session.integrity_log) == log_size == 0


def test_context_exit_abandons_on_error():
    async def scenario():
        run = await create_exam_run(make_config(2), FakeProvider(), FakeGrader(), tick_seconds=None)
        with pytest.raises(RuntimeError):
            async with run.machine:
                raise RuntimeError("view crashed")
        return run

    run = asyncio.run(scenario())
    assert run.machine.status is SessionStatus.ABANDONED
    assert not run.machine.clock.running
