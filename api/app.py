"""
api/app.py: FastAPI 앱 인스턴스 + 세션 미들웨어 + static 파일 서빙
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import FileResponse

from config import (
    BACKEND_BASE_URL,
    BACKEND_TOKEN,
    REQUEST_TIMEOUT,
    SESSION_TTL,
    STATIC_DIR,
    TICK_SECONDS,
)
from api.routes import router
import api.session as session
from exam_prep_cbt.services.backend_client import (
    GradingService,
    HttpGradingService,
    HttpQuestionSetProvider,
    QuestionSetProvider,
)

SESSION_COOKIE = "cbt_session"
CLEANUP_INTERVAL = 300  # 5분

logger = logging.getLogger(__name__)


async def _cleanup_loop() -> None:
    # 만료 세션 주기적 정리. 타이머 task 와 같은 이벤트 루프에서 실행한다
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL)
        removed = session.cleanup_expired()
        if removed:
            logger.info(f"만료 세션 {removed}개 정리")


def create_app(
    provider: Optional[QuestionSetProvider] = None,
    grader: Optional[GradingService] = None,
    backend_url: str = BACKEND_BASE_URL,
    backend_token: str = BACKEND_TOKEN,
    request_timeout: float = REQUEST_TIMEOUT,
    tick_seconds: Optional[float] = TICK_SECONDS,
) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = []
        if app.state.provider is None:
            app.state.provider = HttpQuestionSetProvider(
                base_url=backend_url, token=backend_token, timeout=request_timeout,
            )
            owned.append(app.state.provider)
        if app.state.grader is None:
            app.state.grader = HttpGradingService(
                base_url=backend_url, token=backend_token, timeout=request_timeout,
            )
            owned.append(app.state.grader)
        cleanup = asyncio.create_task(_cleanup_loop())
        logger.info("CBT 시험 서버 시작")
        yield
        cleanup.cancel()
        released = session.release_all()
        if released:
            logger.info(f"종료 시 진행 중이던 시험 {released}건 포기 처리")
        for client in owned:
            await client.close()
        logger.info("CBT 시험 서버 종료")

    app = FastAPI(title="CBT Mock Test", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.provider = provider
    app.state.grader = grader
    app.state.backend_url = backend_url
    app.state.request_timeout = request_timeout
    app.state.tick_seconds = tick_seconds

    # CORS (모바일 브라우저 등 다양한 출처 허용)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 세션 미들웨어: 쿠키에서 세션 ID를 읽고, 없으면 새로 발급
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=SESSION_TTL,
        )
        return response

    app.include_router(router)

    # static 파일 마운트
    if os.path.isdir(STATIC_DIR):
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    # 루트 → index.html
    @app.get("/")
    async def serve_index():
        index_path = os.path.join(STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    return app
