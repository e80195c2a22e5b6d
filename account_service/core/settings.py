from __future__ import annotations

import os
from dataclasses import dataclass


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default) not in ("0", "false", "False", "")


@dataclass(frozen=True)
class Settings:
    app_name: str = os.environ.get("APP_NAME", "account-service")

    # AWS
    aws_region: str = os.environ.get("AWS_REGION", "us-east-1")

    # Cognito
    cognito_user_pool_id: str = os.environ.get("COGNITO_USER_POOL_ID", "")
    cognito_region: str = os.environ.get("COGNITO_REGION", "")
    cognito_app_client_id: str = os.environ.get("COGNITO_APP_CLIENT_ID", "")
    cognito_app_client_secret: str = os.environ.get("COGNITO_APP_CLIENT_SECRET", "")
    # "", "id" or "access"; empty accepts both
    cognito_expected_token_use: str = os.environ.get("COGNITO_EXPECTED_TOKEN_USE", "")
    cognito_jwks_url: str = os.environ.get("COGNITO_JWKS_URL", "")
    cognito_auto_confirm: bool = _flag("COGNITO_AUTO_CONFIRM", "1")
    cognito_connect_timeout: float = float(os.environ.get("COGNITO_CONNECT_TIMEOUT", "5"))
    cognito_read_timeout: float = float(os.environ.get("COGNITO_READ_TIMEOUT", "10"))
    jwks_timeout: float = float(os.environ.get("JWKS_TIMEOUT", "10"))
    # minimum seconds between JWKS refetches triggered by an unknown kid
    jwks_min_refresh: float = float(os.environ.get("JWKS_MIN_REFRESH", "300"))
    admin_group: str = os.environ.get("ADMIN_GROUP", "ADMIN")

    # Local development only: trust token claims without verifying signatures
    auth_dev_mode: bool = _flag("AUTH_DEV_MODE", "0")

    # Account store
    database_url: str = os.environ.get("DATABASE_URL", "sqlite:///./accounts.db")
    db_isolation_level: str = os.environ.get("DB_ISOLATION_LEVEL", "")
    db_pool_timeout: float = float(os.environ.get("DB_POOL_TIMEOUT", "10"))
    db_echo: bool = _flag("DB_ECHO", "0")

    # Observability
    log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_json: bool = _flag("LOG_JSON", "0")
    metrics_enabled: bool = _flag("METRICS_ENABLED", "1")

    cors_allow_origins: str = os.environ.get("CORS_ALLOW_ORIGINS", "*")

    @property
    def cognito_issuer(self) -> str:
        region = self.cognito_region or self.aws_region
        return f"https://cognito-idp.{region}.amazonaws.com/{self.cognito_user_pool_id}"

    @property
    def jwks_url(self) -> str:
        return self.cognito_jwks_url or f"{self.cognito_issuer}/.well-known/jwks.json"

    @property
    def cognito_enabled(self) -> bool:
        return bool(self.cognito_user_pool_id and self.cognito_app_client_id)


S = Settings()
