from app.core.config import settings


def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["delivery"]["mode"] == "inline"
    assert data["delivery"]["batch_limit"] == settings.worker_batch_limit
    assert data["telegram_dry_run"] is settings.telegram_dry_run


def test_health_reports_worker_mode(client, worker_mode):
    assert client.get("/health").json()["delivery"]["mode"] == "worker"


def test_ready_endpoint_checks_database(client):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "database": "connected"}


def test_ready_endpoint_reports_database_failure(client, db, monkeypatch):
    def broken_execute(*args, **kwargs):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(db, "execute", broken_execute)

    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["database"] == "disconnected"


def test_config_errors_for_production():
    from app.main import collect_config_errors

    prod = settings.model_copy(
        update={"app_env": "production", "telegram_webhook_secret": None, "delivery_mode": "worker"}
    )
    errors = collect_config_errors(prod)

    assert any("TELEGRAM_WEBHOOK_SECRET" in e for e in errors)
    assert any("WORKER_API_KEY" in e for e in errors)
    assert any("TELEGRAM_DRY_RUN" in e for e in errors)


def test_config_errors_for_unknown_delivery_mode():
    from app.main import collect_config_errors

    assert collect_config_errors(settings.model_copy(update={"delivery_mode": "carrier-pigeon"}))
    assert collect_config_errors(settings) == []
