from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api import create_app
from config import Settings
from library import Library
from utils.ui_helpers import OUTPUT_MODE_ENV


class FakeClock:
    """Testlerin ileri sarabildiği çağrılabilir saat."""

    def __init__(self, start: datetime = None) -> None:
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_settings(tmp_path, **overrides) -> Settings:
    # Her test için benzersiz bir veritabanı ve ön yüz klasörü
    values = dict(
        database_file=str(tmp_path / "library.db"),
        database_pool_size=3,
        frontend_dir=str(tmp_path / "frontend"),
        upload_dir="",
        default_loan_days=7,
        fine_per_day=5,
        report_limit=10,
        require_auth=True,
        log_level="INFO",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings_factory(tmp_path):
    def factory(**overrides) -> Settings:
        return make_settings(tmp_path, **overrides)
    return factory


@pytest.fixture
def settings(settings_factory):
    return settings_factory()


@pytest.fixture
def library(settings, clock):
    lib = Library(settings, clock=clock).open()
    yield lib
    lib.close()


@pytest.fixture
def client(settings, clock):
    app = create_app(settings, clock=clock)
    with TestClient(app) as test_client:
        yield test_client


def _token_headers(client, name, email, role):
    # Yönetici hesabı HTTP üzerinden anonim açılamaz; servis katmanından oluşturulur
    client.app.state.library.auth.signup(name, email, "pw-" + role, role)
    response = client.post("/login", json={"email": email, "password": "pw-" + role})
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def admin_headers(client):
    return _token_headers(client, "Ada Admin", "admin@example.com", "admin")


@pytest.fixture
def member_headers(client):
    return _token_headers(client, "Max Member", "member@example.com", "member")
