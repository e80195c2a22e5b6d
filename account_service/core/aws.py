from __future__ import annotations

import boto3
from botocore.config import Config

from .settings import Settings


def cognito_client(settings: Settings):
    """cognito-idp client with bounded timeouts and no automatic retries."""
    config = Config(
        connect_timeout=settings.cognito_connect_timeout,
        read_timeout=settings.cognito_read_timeout,
        retries={"max_attempts": 1, "mode": "standard"},
    )
    session = boto3.session.Session(region_name=settings.cognito_region or settings.aws_region or "us-east-1")
    return session.client("cognito-idp", config=config)
