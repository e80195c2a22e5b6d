from __future__ import annotations

import time
from typing import Callable, Optional

from fastapi import Request, Response
from loguru import logger
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

DURATION_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10)


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    if route and getattr(route, "path", None):
        return route.path
    return request.url.path


class Metrics:
    """Process-wide observability sink; one instance is injected into every service."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()
        r = self.registry
        self._start_time = time.monotonic()

        # HTTP
        self.request_count = Counter("http_requests_total", "Total HTTP requests", ["method", "path", "status"], registry=r)
        self.request_errors = Counter(
            "http_request_errors_total",
            "Total HTTP requests resulting in server errors",
            ["method", "path", "status"],
            registry=r,
        )
        self.request_latency = Histogram(
            "http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "path"],
            buckets=DURATION_BUCKETS,
            registry=r,
        )
        self.in_progress = Gauge("http_requests_in_progress", "In-progress HTTP requests", ["method", "path"], registry=r)
        self.uptime = Gauge("app_uptime_seconds", "Application uptime in seconds", registry=r)
        self.app_info = Info("app", "Application metadata", registry=r)

        # Authentication
        self.login_success = Counter("auth_login_success_total", "Successful login attempts", registry=r)
        self.login_failure = Counter("auth_login_failure_total", "Failed login attempts", registry=r)
        self.login_duration = Histogram(
            "auth_login_duration_seconds", "Login duration in seconds", buckets=DURATION_BUCKETS, registry=r
        )
        self.registration_success = Counter("auth_registration_success_total", "Successful registrations", registry=r)
        self.registration_failure = Counter("auth_registration_failure_total", "Failed registrations", registry=r)
        self.registration_duration = Histogram(
            "auth_registration_duration_seconds", "Registration duration in seconds", buckets=DURATION_BUCKETS, registry=r
        )
        self.password_reset = Counter("auth_password_reset_total", "Password reset requests", registry=r)
        self.password_change = Counter("auth_password_change_total", "Password change requests", registry=r)
        self.token_refresh = Counter("auth_token_refresh_total", "Token refresh requests", registry=r)
        self.signout_provider_failure = Counter(
            "auth_signout_provider_failure_total",
            "Sign-outs reported as successful although the identity provider failed",
            registry=r,
        )

        # Users
        self.user_profile_update = Counter("user_profile_update_total", "User profile updates", registry=r)
        self.user_deletion = Counter("user_deletion_total", "User deletions", registry=r)
        self.admin_user_update = Counter("admin_user_update_total", "Admin user updates", registry=r)

        # Addresses
        self.address_created = Counter("address_created_total", "Addresses created", registry=r)
        self.address_updated = Counter("address_updated_total", "Addresses updated", registry=r)
        self.address_deleted = Counter("address_deleted_total", "Addresses deleted", registry=r)
        self.address_default_changed = Counter("address_default_changed_total", "Default address changes", registry=r)

    def set_app_info(self, name: str, version: str) -> None:
        self.app_info.info({"name": name, "version": version})

    def record_login(self, success: bool, duration_seconds: float) -> None:
        (self.login_success if success else self.login_failure).inc()
        self.login_duration.observe(duration_seconds)

    def record_registration(self, success: bool, duration_seconds: float) -> None:
        (self.registration_success if success else self.registration_failure).inc()
        self.registration_duration.observe(duration_seconds)

    async def middleware(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        path = _route_path(request)
        method = request.method
        start = time.perf_counter()
        self.in_progress.labels(method=method, path=path).inc()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            self.in_progress.labels(method=method, path=path).dec()
            elapsed = time.perf_counter() - start
            # route is resolved by the time the response comes back
            path = _route_path(request)
            self.request_latency.labels(method=method, path=path).observe(elapsed)
            self.request_count.labels(method=method, path=path, status=str(status_code)).inc()
            if status_code >= 500:
                self.request_errors.labels(method=method, path=path, status=str(status_code)).inc()
            logger.info("{} {} -> {} ({:.1f}ms)", method, request.url.path, status_code, elapsed * 1000)

    def endpoint(self) -> Response:
        self.uptime.set(time.monotonic() - self._start_time)
        return Response(generate_latest(self.registry), media_type=CONTENT_TYPE_LATEST)

    def value(self, name: str, labels: Optional[dict] = None) -> float:
        """Current sample value, or 0.0 when nothing was recorded yet."""
        sample = self.registry.get_sample_value(name, labels or {})
        return sample or 0.0
