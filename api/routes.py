"""
api/routes.py: FastAPI 엔드포인트

브라우저 클라이언트는 화면만 그리고, 시험 상태는 사용자 세션에 보관된
ExamRun(상태 머신 + 제출기)이 관리한다.
"""

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

import api.session as session
from exam_prep_cbt.errors import (
    ConfigurationError,
    DuplicateSubmissionError,
    InactiveSessionError,
    ProviderError,
    SubmissionError,
)
from exam_prep_cbt.models.question_model import Question
from exam_prep_cbt.models.session_state import (
    IntegrityEventType,
    SessionConfig,
    SessionStatus,
    UNANSWERED,
)
from exam_prep_cbt.services.session_clock import format_remaining, is_low_time
from exam_prep_cbt.services.session_factory import ExamRun, create_exam_run

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class SaveAnswerBody(BaseModel):
    question_id: str
    option_index: int = UNANSWERED

class NavigateBody(BaseModel):
    index: int = 0

class ToggleFlagBody(BaseModel):
    question_id: str

class IntegrityEventBody(BaseModel):
    type: IntegrityEventType
    detail: str = ""


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _question_to_dict(q: Question) -> dict:
    # 정답 정보는 세션에 존재하지 않으므로 노출될 수 없다
    return {
        "id": q.id,
        "text": q.text,
        "options": [opt.text for opt in q.options],
        "difficulty": q.difficulty.value,
    }


def _sid(request: Request) -> str:
    return request.state.session_id


def _get_run(request: Request) -> ExamRun:
    run: ExamRun = session.get(_sid(request), "exam_run")
    if run is None:
        raise HTTPException(status_code=404, detail="시험 세션이 없습니다.")
    return run


def _inactive(e: InactiveSessionError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(e))


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.post("/api/start-exam")
async def start_exam(body: SessionConfig, request: Request):
    return await _start(body, request)


@router.post("/api/retry-start")
async def retry_start(request: Request):
    """문제 조회 실패 후 같은 조건으로 다시 요청."""
    config: SessionConfig = session.get(_sid(request), "last_config")
    if config is None:
        raise HTTPException(status_code=400, detail="이전 시험 조건이 없습니다.")
    return await _start(config, request)


async def _start(body: SessionConfig, request: Request) -> dict:
    sid = _sid(request)
    previous: ExamRun = session.get(sid, "exam_run")
    if previous is not None:
        previous.machine.abandon()
        session.put(sid, "exam_run", None)

    app_state = request.app.state
    try:
        run = await create_exam_run(
            body,
            provider=app_state.provider,
            grader=app_state.grader,
            timeout=app_state.request_timeout,
            tick_seconds=app_state.tick_seconds,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        # 세션은 만들어지지 않음. 클라이언트는 같은 조건으로 다시 요청할 수 있다
        session.put(sid, "last_config", body)
        raise HTTPException(status_code=502, detail=str(e))

    run.machine.start()
    session.put(sid, "exam_run", run)
    session.put(sid, "last_config", body)
    return {
        "total": run.session.total,
        "remaining_seconds": run.session.remaining_seconds,
        "ok": True,
    }


@router.get("/api/question/{index}")
async def get_question(index: int, request: Request):
    run = _get_run(request)
    exam = run.session
    if not 0 <= index < exam.total:
        raise HTTPException(status_code=404, detail="문제를 찾을 수 없습니다.")

    q = exam.questions[index]
    d = _question_to_dict(q)
    d.update({
        "saved_answer": exam.answers.get(q.id, UNANSWERED),
        "flagged": run.machine.is_flagged(q.id),
        "status": run.machine.question_status(index).value,
        "index": index,
        "total": exam.total,
    })
    return d


@router.get("/api/exam-state")
async def get_exam_state(request: Request):
    run = _get_run(request)
    state = run.machine.snapshot()
    remaining = state["remaining_seconds"]
    last_error = run.packager.last_error
    state.update({
        "remaining_label": format_remaining(remaining),
        "low_time": is_low_time(remaining),
        "submit_error": last_error.message if last_error else None,
    })
    return state


@router.post("/api/save-answer")
async def save_answer(body: SaveAnswerBody, request: Request):
    run = _get_run(request)
    try:
        run.machine.select_answer(body.question_id, body.option_index)
    except InactiveSessionError as e:
        raise _inactive(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "answered_count": run.machine.answered_count}


@router.post("/api/navigate")
async def navigate(body: NavigateBody, request: Request):
    run = _get_run(request)
    try:
        moved = run.machine.navigate_to(body.index)
    except InactiveSessionError as e:
        raise _inactive(e)
    return {"index": run.session.current_index, "moved": moved, "ok": True}


@router.post("/api/toggle-flag")
async def toggle_flag(body: ToggleFlagBody, request: Request):
    run = _get_run(request)
    try:
        flagged = run.machine.toggle_flag(body.question_id)
    except InactiveSessionError as e:
        raise _inactive(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"flagged": flagged, "flagged_count": run.machine.flagged_count, "ok": True}


@router.post("/api/integrity-event")
async def integrity_event(body: IntegrityEventBody, request: Request):
    """탭 전환 / 전체화면 해제 보고. 기록만 하고 절대 막지 않는다."""
    run = _get_run(request)
    delivered = run.machine.signal_source.emit(body.type, body.detail)
    return {
        "recorded": delivered > 0,
        "visibility_lost_count": run.machine.monitor.visibility_lost_count,
        "ok": True,
    }


@router.post("/api/submit-exam")
async def submit_exam(request: Request):
    run = _get_run(request)
    try:
        report = await run.packager.submit()
    except DuplicateSubmissionError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except SubmissionError as e:
        # 서버 메시지를 그대로 전달, 세션은 Active 로 복귀했으므로 재시도 가능
        raise HTTPException(status_code=502, detail=e.message)
    except InactiveSessionError as e:
        raise _inactive(e)
    if report is None:
        raise HTTPException(status_code=409, detail="시험이 이미 종료되었습니다.")
    return report.model_dump(mode="json")


@router.post("/api/abandon")
async def abandon_exam(request: Request):
    run = _get_run(request)
    abandoned = run.machine.abandon()
    return {"abandoned": abandoned, "status": run.machine.status.value, "ok": True}


@router.get("/api/results")
async def get_results(request: Request):
    run = _get_run(request)
    if run.machine.status is not SessionStatus.COMPLETED or run.packager.report is None:
        raise HTTPException(status_code=400, detail="시험이 아직 제출되지 않았습니다.")
    return run.packager.report.model_dump(mode="json")


@router.post("/api/reset")
async def reset_session(request: Request):
    session.reset(_sid(request))
    return {"ok": True}
