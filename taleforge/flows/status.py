"""Deployment status panel (admin only): quick health checks of each service.

Web services get a HEAD request and count as healthy only on a non-error
status. The database is checked through the API's `health/database` endpoint,
which reports its own version and error.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import httpx

from taleforge.auth import has_administrator_role
from taleforge.models import DeploymentInfo
from taleforge.session import SessionContext

logger = logging.getLogger(__name__)

DATABASE_HEALTH_ENDPOINT = "health/database"


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


class DeploymentStatus:
    def __init__(
        self,
        session: SessionContext,
        api_url: str,
        frontend_url: str = "",
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session = session
        self.api_url = api_url.rstrip("/")
        self.frontend_url = frontend_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self.deployments: list[DeploymentInfo] = []
        self.last_refresh: str = ""

    @property
    def visible(self) -> bool:
        return has_administrator_role(self.session.token)

    def _targets(self) -> list[tuple[str, str, bool]]:
        targets = [("Backend API", self.api_url, False)]
        if self.frontend_url:
            targets.append(("Frontend App", self.frontend_url, False))
        targets.append(("Database", f"{self.api_url}/{DATABASE_HEALTH_ENDPOINT}", True))
        return targets

    async def check(self) -> list[DeploymentInfo]:
        """Check every service concurrently. One failing check never hides the others."""
        if not self.visible:
            return []

        targets = self._targets()
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            results = await asyncio.gather(
                *(self._check_service(client, name, url, is_db) for name, url, is_db in targets),
                return_exceptions=True,
            )

        now = _now()
        deployments = []
        for (name, url, _), result in zip(targets, results):
            if isinstance(result, BaseException):
                result = DeploymentInfo(
                    service=name, status="error", url=url, last_checked=now,
                    error=str(result) or "Unknown error",
                )
            deployments.append(result)
        self.deployments = deployments
        self.last_refresh = now
        return deployments

    async def _check_service(
        self, client: httpx.AsyncClient, name: str, url: str, is_database: bool
    ) -> DeploymentInfo:
        if is_database:
            return await self._check_database(client, name, url)

        try:
            resp = await client.head(url)
        except httpx.HTTPError as e:
            logger.warning("health check %s failed: %s", name, e)
            return DeploymentInfo(
                service=name, status="error", url=url, last_checked=_now(),
                error=f"Cannot reach {url}",
            )
        if resp.is_error:
            return DeploymentInfo(
                service=name, status="error", url=url, last_checked=_now(),
                error=f"HTTP {resp.status_code}",
            )
        return DeploymentInfo(
            service=name, status="healthy", url=url, last_checked=_now(),
            version=resp.headers.get("x-version"),
        )

    async def _check_database(self, client: httpx.AsyncClient, name: str, url: str) -> DeploymentInfo:
        try:
            resp = await client.get(url)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("database health check failed: %s", e)
            return DeploymentInfo(
                service=name, status="error", url="", last_checked=_now(),
                error=str(e) or "Database check failed",
            )
        if not isinstance(data, dict):
            logger.warning("database health check returned %s", type(data).__name__)
            return DeploymentInfo(
                service=name, status="error", url="", last_checked=_now(),
                error=f"Unexpected health response (HTTP {resp.status_code})",
            )
        ok = resp.is_success
        error = data.get("error")
        return DeploymentInfo(
            service=name,
            status="healthy" if ok else "error",
            url="",
            last_checked=_now(),
            version=str(data.get("version") or "Unknown"),
            error=None if ok else str(error or f"HTTP {resp.status_code}"),
        )
