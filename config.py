import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
STATIC_DIR = os.path.join(BASE_DIR, "static")
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
SESSION_TTL = int(os.getenv("SESSION_TTL", "3600"))
OPEN_BROWSER = os.getenv("OPEN_BROWSER", "1") != "0"

# Backend (question generator + grading service)
BACKEND_BASE_URL = os.getenv("BACKEND_BASE_URL", "http://localhost:5000/api")
BACKEND_TOKEN = os.getenv("BACKEND_TOKEN", "")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))

# Exam rules
MINUTES_PER_QUESTION = 1.5
MIN_QUESTIONS = 1
MAX_QUESTIONS = 200
TICK_SECONDS = 1.0
LOW_TIME_WARNING_SECONDS = 300  # 5분 미만이면 경고 표시
