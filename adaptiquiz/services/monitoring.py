"""
Health checks and monitoring with Prometheus metrics
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response
import time
import psutil
import structlog

from adaptiquiz import config

logger = structlog.get_logger()

# Prometheus metrics
REQUEST_COUNT = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
REQUEST_DURATION = Histogram('http_request_duration_seconds', 'HTTP request duration', ['method', 'endpoint'])
QUIZ_GENERATION_REQUESTS = Counter('quiz_generation_requests_total', 'Total quiz generation requests', ['source', 'status'])
RATE_LIMIT_DENIALS = Counter('rate_limit_denials_total', 'Requests refused by a rate limiter', ['limiter'])


class HealthChecker:
    def __init__(self):
        self.start_time = time.time()

    def check_rate_limit_store(self) -> dict:
        """Check the rate limit store is reachable"""
        from adaptiquiz.middleware.rate_limit import rate_limit_store

        try:
            if rate_limit_store.ping():
                return {
                    "status": "healthy",
                    "message": "Rate limit store reachable",
                    "backend": type(rate_limit_store).__name__
                }
            return {
                "status": "unhealthy",
                "message": "Rate limit store did not answer"
            }
        except Exception as e:
            logger.error(f"Rate limit store health check failed: {e}")
            return {
                "status": "unhealthy",
                "message": f"Rate limit store failed: {str(e)}"
            }

    def check_generation_service(self) -> dict:
        """The AI service is optional: without a key every quiz comes from the fallback"""
        if config.OPENAI_API_KEY:
            return {
                "status": "healthy",
                "message": "Generative question service configured",
                "model": config.OPENAI_MODEL
            }
        return {
            "status": "degraded",
            "message": "OPENAI_API_KEY not set; using fallback question synthesis"
        }

    def get_system_metrics(self) -> dict:
        """Get system resource metrics"""
        try:
            cpu_percent = psutil.cpu_percent(interval=0.1)
            memory = psutil.virtual_memory()

            return {
                "cpu_percent": cpu_percent,
                "memory_percent": memory.percent,
                "memory_available_gb": round(memory.available / (1024**3), 2),
                "uptime_seconds": time.time() - self.start_time
            }
        except Exception as e:
            logger.error(f"System metrics collection failed: {e}")
            return {"error": str(e)}

    def get_health_status(self) -> dict:
        """Get overall health status"""
        checks = {
            "rate_limit_store": self.check_rate_limit_store(),
            "generation_service": self.check_generation_service()
        }

        unhealthy_checks = [name for name, check in checks.items() if check["status"] == "unhealthy"]
        overall_status = "healthy" if not unhealthy_checks else "unhealthy"

        return {
            "status": overall_status,
            "timestamp": time.time(),
            "checks": checks,
            "system_metrics": self.get_system_metrics(),
            "unhealthy_components": unhealthy_checks
        }


# Global health checker instance
health_checker = HealthChecker()


def get_metrics():
    """Get Prometheus metrics"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
