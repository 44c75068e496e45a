"""
Integration tests for API endpoints
"""
from unittest.mock import patch

from fastapi.testclient import TestClient

from adaptiquiz.auth import create_access_token
from adaptiquiz.main import app
from adaptiquiz.middleware.rate_limit import RateLimitConfig, rate_limit_store, rate_limiters

client = TestClient(app)

CELL_TEXT = "The mitochondria is the powerhouse of the cell. It produces ATP through respiration."


class TestHealthEndpoints:
    def test_health_check(self):
        """Test health check endpoint"""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["generation_service"]["status"] == "degraded"
        assert "timestamp" in data

    def test_metrics_endpoint(self):
        """Test metrics endpoint"""
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "quiz_generation_requests_total" in response.text


class TestGenerateEndpoint:
    def test_generate_from_text(self):
        response = client.post("/api/quiz/generate", data={"content": CELL_TEXT, "num_questions": "1"})
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "9"
        assert response.headers["X-RateLimit-Reset"].endswith("Z")

        data = response.json()
        assert data["type"] == "success"
        assert data["source"] == "fallback"
        assert "rate_limit" not in data
        [question] = data["questions"]
        assert question["answer"] == "mitochondria"
        assert len(question["options"]) == 4
        assert "mitochondria" in question["options"]

    def test_generate_from_file(self):
        response = client.post(
            "/api/quiz/generate",
            data={"difficulty": "hard", "num_questions": "3"},
            files={"file": ("notes.txt", CELL_TEXT.encode(), "text/plain")},
        )
        assert response.status_code == 200
        assert len(response.json()["questions"]) == 3

    def test_short_content_is_bad_request(self):
        response = client.post("/api/quiz/generate", data={"content": "not enough"})
        assert response.status_code == 400
        assert "at least 5 words" in response.json()["detail"]

    def test_internal_failure_is_server_error(self):
        with patch("adaptiquiz.services.quiz.sanitize", side_effect=RuntimeError("boom")):
            response = client.post("/api/quiz/generate", data={"content": CELL_TEXT})
        assert response.status_code == 500
        assert response.json()["detail"] == "An unexpected error occurred while generating the quiz."

    def test_fail_closed_store_error_is_server_error(self):
        closed = RateLimitConfig(window_ms=900_000, max_requests=10, fail_open=False)
        with patch.object(rate_limiters["ai_generation"], "config", closed), \
                patch.object(rate_limit_store, "get", side_effect=ConnectionError("store down")):
            response = client.post("/api/quiz/generate", data={"content": CELL_TEXT})
        assert response.status_code == 500

    def test_rate_limit_returns_429(self):
        for _ in range(10):
            assert client.post("/api/quiz/generate", data={"content": CELL_TEXT}).status_code == 200
        response = client.post("/api/quiz/generate", data={"content": CELL_TEXT})
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.json()["error"] == "Rate limit exceeded"

    def test_signed_in_user_has_own_bucket(self):
        for _ in range(10):
            client.post("/api/quiz/generate", data={"content": CELL_TEXT})
        token = create_access_token("42")
        response = client.post("/api/quiz/generate", data={"content": CELL_TEXT},
                               headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200


class TestAdaptAndGrade:
    def test_adapt_difficulty(self):
        response = client.post("/api/quiz/adapt-difficulty",
                               json={"user_performance": 92, "current_difficulty": "easy"})
        assert response.status_code == 200
        assert response.json()["data"]["new_difficulty"] == "medium"

    def test_adapt_difficulty_validates_body(self):
        response = client.post("/api/quiz/adapt-difficulty",
                               json={"user_performance": 150, "current_difficulty": "easy"})
        assert response.status_code == 422

    def test_grade(self):
        body = {
            "questions": [{"question": "Energy currency?", "answer": "ATP",
                           "options": ["ATP", "DNA", "RNA", "NADH"]}],
            "selected_answers": ["ATP"],
        }
        response = client.post("/api/quiz/grade", json=body)
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "30"
        data = response.json()
        assert (data["score"], data["percentage"], data["badge"]) == (1, 100, "Perfect Score!")

    def test_grade_rejects_extra_answers(self):
        body = {
            "questions": [{"question": "Energy currency?", "answer": "ATP",
                           "options": ["ATP", "DNA", "RNA", "NADH"]}],
            "selected_answers": ["ATP", "DNA"],
        }
        assert client.post("/api/quiz/grade", json=body).status_code == 400
