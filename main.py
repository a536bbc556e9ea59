"""
main.py: exam-prep-cbt 실행 진입점

백엔드 주소, 요청 제한 시간, 타이머 주기를 설정값으로 주입해 시험 서버를 띄운다.
Ctrl+C 로 종료하면 uvicorn 이 lifespan 종료를 실행하고,
그때 진행 중인 시험은 모두 포기 처리되어 타이머와 감지가 멈춘다 (제출은 보내지 않음).
"""

import logging
import shutil
import socket
import subprocess
import sys
import threading
import time
import webbrowser

import uvicorn
from fastapi import FastAPI

from api.app import create_app
from config import (
    BACKEND_BASE_URL,
    BACKEND_TOKEN,
    DEFAULT_HOST,
    DEFAULT_PORT,
    LOG_FILE,
    MINUTES_PER_QUESTION,
    OPEN_BROWSER,
    REQUEST_TIMEOUT,
    TICK_SECONDS,
)

logger = logging.getLogger(__name__)

# 전체 화면 앱 모드를 지원하는 브라우저 (이탈 시 fullscreen_exited 로 기록됨)
APP_MODE_BROWSERS = ("google-chrome", "chromium", "chromium-browser", "msedge", "chrome")


def setup_logging(log_file: str = LOG_FILE) -> None:
    handlers: list[logging.Handler] = []
    # pythonw 등 콘솔 없는 실행에서는 stdout 이 None
    if sys.stdout is not None:
        handlers.append(logging.StreamHandler(sys.stdout))
    file_error = None
    try:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    except OSError as e:
        file_error = e
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers or [logging.NullHandler()],
    )
    if file_error is not None:
        logger.warning(f"로그 파일을 열 수 없어 콘솔에만 기록합니다: {file_error}")


def build_app() -> FastAPI:
    """설정값으로 실제 백엔드에 연결하는 앱 생성."""
    return create_app(
        backend_url=BACKEND_BASE_URL,
        backend_token=BACKEND_TOKEN,
        request_timeout=REQUEST_TIMEOUT,
        tick_seconds=TICK_SECONDS,
    )


def pick_port(host: str, preferred: int) -> int:
    """preferred 포트가 사용 중이면 임의의 빈 포트."""
    for port in (preferred, 0):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((host, port))
            except OSError:
                logger.warning(f"포트 {port} 사용 중 → 빈 포트로 대체")
                continue
            return s.getsockname()[1]
    raise RuntimeError(f"{host} 에서 사용할 수 있는 포트가 없습니다")


def _open_when_ready(server: uvicorn.Server, url: str, timeout: float = 15.0) -> None:
    deadline = time.monotonic() + timeout
    while not server.started:
        if server.should_exit or time.monotonic() > deadline:
            logger.error("서버 시작을 확인하지 못해 브라우저를 열지 않습니다")
            return
        time.sleep(0.1)

    for name in APP_MODE_BROWSERS:
        path = shutil.which(name)
        if path:
            logger.info(f"브라우저 실행 (앱 모드): {path}")
            subprocess.Popen([path, f"--app={url}", "--start-fullscreen", "--no-first-run"])
            return
    logger.info("앱 모드 브라우저 없음 → 기본 브라우저 사용")
    webbrowser.open(url)


def main() -> None:
    setup_logging()
    port = pick_port(DEFAULT_HOST, DEFAULT_PORT)
    url = f"http://{DEFAULT_HOST}:{port}"
    logger.info(
        f"=== CBT 시험 서버 {url} | backend={BACKEND_BASE_URL} "
        f"| 문항당 {MINUTES_PER_QUESTION}분 | 요청 제한 {REQUEST_TIMEOUT}s ==="
    )

    server = uvicorn.Server(uvicorn.Config(build_app(), host=DEFAULT_HOST, port=port, log_level="warning"))
    if OPEN_BROWSER:
        threading.Thread(target=_open_when_ready, args=(server, url), daemon=True).start()

    server.run()
    logger.info("CBT 시험 서버가 종료되었습니다")


if __name__ == "__main__":
    main()
