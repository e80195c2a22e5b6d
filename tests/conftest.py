from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from account_service.core.db import Database  # noqa: E402
from account_service.core.settings import Settings  # noqa: E402
from account_service.metrics import Metrics  # noqa: E402
from account_service.services.addresses import AddressService  # noqa: E402
from account_service.services.users import UserService  # noqa: E402


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'accounts.db'}",
        cognito_user_pool_id="us-east-1_pool",
        cognito_region="us-east-1",
        cognito_app_client_id="client-123",
        cognito_app_client_secret="",
        cognito_auto_confirm=True,
        auth_dev_mode=False,
        metrics_enabled=True,
        log_json=False,
    )


@pytest.fixture
def db(settings):
    database = Database(settings)
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def metrics() -> Metrics:
    return Metrics()


@pytest.fixture
def users(db, metrics) -> UserService:
    return UserService(db, metrics)


@pytest.fixture
def addresses(db, metrics) -> AddressService:
    return AddressService(db, metrics)


@pytest.fixture
def alice(users):
    return users.create_local_user(
        username="alice",
        email="alice@example.com",
        password="Secret123!",
        first_name="Alice",
        last_name="Liddell",
    )
