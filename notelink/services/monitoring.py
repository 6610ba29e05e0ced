"""
Prometheus metrics and the /health report
"""
import time
from typing import Callable, Dict

import psutil
import structlog
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from sqlalchemy import func
from sqlmodel import Session, select

from notelink.db import engine
from notelink.models import Community, Note, NoteQuiz, User
from notelink.services.cache import cache
from notelink.services.llm import OPENAI_MODEL, ai_configured

logger = structlog.get_logger()

REQUEST_COUNT = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
REQUEST_DURATION = Histogram('http_request_duration_seconds', 'HTTP request duration', ['method', 'endpoint'])
QUIZ_GENERATION_REQUESTS = Counter(
    'quiz_generation_requests_total', 'Quiz generation attempts by source and outcome', ['source', 'status']
)
QUIZZES_GENERATED = Counter('quizzes_generated_total', 'Quiz items stored by generation', ['source'])

# Row counts refreshed whenever /health is read
TABLE_ROWS = Gauge('notelink_table_rows', 'Row count per table', ['table'])
COUNTED_TABLES = {"user": User, "community": Community, "note": Note, "note_quiz": NoteQuiz}


def _run_check(name: str, check: Callable[[], Dict]) -> Dict:
    try:
        return check()
    except Exception as e:
        logger.error("health_check_failed", check=name, error=str(e))
        return {"status": "unhealthy", "message": str(e)}


class HealthChecker:
    def __init__(self):
        self.start_time = time.time()

    def check_database(self) -> Dict:
        def run():
            with Session(engine) as session:
                session.exec(select(User.id).limit(1)).all()
            return {"status": "healthy"}
        return _run_check("database", run)

    def check_cache(self) -> Dict:
        """Write, read back and delete a scratch key"""
        def run():
            key = "health:check"
            cache.set(key, "ok", expire=10)
            ok = cache.get(key) == "ok"
            cache.delete(key)
            backend = "redis" if cache.redis_client else "memory"
            return {"status": "healthy" if ok else "unhealthy", "backend": backend}
        return _run_check("cache", run)

    def check_ai(self) -> Dict:
        # AI quizzes are optional; without a key generation uses the rule engine
        if ai_configured():
            return {"status": "healthy", "model": OPENAI_MODEL}
        return {"status": "disabled", "message": "OPENAI_API_KEY not set; rule-based quizzes only"}

    def get_system_metrics(self) -> Dict:
        def run():
            memory = psutil.virtual_memory()
            return {
                "cpu_percent": psutil.cpu_percent(interval=None),
                "memory_percent": memory.percent,
                "disk_percent": psutil.disk_usage('/').percent,
                "uptime_seconds": round(time.time() - self.start_time, 1),
            }
        return _run_check("system", run)

    def get_table_counts(self) -> Dict:
        def run():
            counts = {}
            with Session(engine) as session:
                for name, model in COUNTED_TABLES.items():
                    counts[name] = session.exec(select(func.count()).select_from(model)).one()
                    TABLE_ROWS.labels(table=name).set(counts[name])
            return counts
        return _run_check("table_counts", run)

    def get_health_status(self) -> Dict:
        checks = {
            "database": self.check_database(),
            "cache": self.check_cache(),
            "ai": self.check_ai(),
        }
        unhealthy = [name for name, check in checks.items() if check["status"] == "unhealthy"]
        return {
            "status": "unhealthy" if unhealthy else "healthy",
            "timestamp": time.time(),
            "checks": checks,
            "system_metrics": self.get_system_metrics(),
            "table_counts": self.get_table_counts(),
            "unhealthy_components": unhealthy,
        }


health_checker = HealthChecker()


def get_metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
