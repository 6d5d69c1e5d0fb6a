"""
Tests for application lifespan wiring.
"""
import pytest
from fastapi.testclient import TestClient

from retail_queue.api.main import app
from retail_queue.config import get_settings
from retail_queue.message_queue import NotificationProducer, QueueService, QueueWorker
from retail_queue.repositories import InMemoryMessageStore, StoreConnection


@pytest.fixture
def memory_env(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("ENVIRONMENT", "test")
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


class TestLifespan:

    def test_startup_wires_services(self, memory_env):
        memory_env.setenv("ENABLE_QUEUE_WORKER", "false")
        get_settings.cache_clear()

        with TestClient(app) as client:
            assert isinstance(app.state.connection, StoreConnection)
            assert isinstance(app.state.store, InMemoryMessageStore)
            assert app.state.connection.store is app.state.store
            assert isinstance(app.state.queue_service, QueueService)
            assert isinstance(app.state.producer, NotificationProducer)
            assert app.state.worker is None

            response = client.get("/ready")
            assert response.status_code == 200
            assert response.json()["worker"] == "stopped"

    def test_shutdown_closes_connection(self, memory_env):
        memory_env.setenv("ENABLE_QUEUE_WORKER", "false")
        get_settings.cache_clear()

        with TestClient(app):
            connection = app.state.connection
            assert connection.is_open

        assert not connection.is_open

    def test_worker_started_and_stopped(self, memory_env):
        memory_env.setenv("QUEUE_POLL_INTERVAL_SECONDS", "0.05")
        get_settings.cache_clear()

        with TestClient(app) as client:
            worker = app.state.worker
            assert isinstance(worker, QueueWorker)
            assert client.get("/health").status_code == 200

        assert not worker.is_running
