import httpx
import logging
from typing import List, Optional
from urllib.parse import quote

from pydantic import ValidationError as SchemaError

from npm_clean_audit.errors import TransportError
from npm_clean_audit.models import AuditRun, Project, ProjectArchive, ReportSet, UploadResult

logger = logging.getLogger(__name__)


class AuditService:
    """HTTP client for the server that runs npm ls, npm audit, depcheck and git diff."""

    def __init__(self, base_url: str, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                         transport=self.transport) as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("%s failed: %s", operation, e)
            raise TransportError(operation, str(e)) from e
        return response

    @staticmethod
    def _json(operation: str, response: httpx.Response):
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(operation, "response is not JSON") from e

    async def list_projects(self) -> List[Project]:
        response = await self._request("list projects", "GET", "/api/projects")
        data = self._json("list projects", response)
        try:
            return [Project.model_validate(p) for p in data]
        except (SchemaError, TypeError) as e:
            raise TransportError("list projects", f"unexpected payload: {e}") from e

    async def fetch_reports(self, project_id: str) -> ReportSet:
        response = await self._request(
            "fetch reports", "GET", f"/api/projects/{quote(project_id, safe='')}/reports"
        )
        data = self._json("fetch reports", response)
        try:
            return ReportSet.model_validate(data)
        except SchemaError as e:
            raise TransportError("fetch reports", f"unexpected payload: {e}") from e

    async def run_audit(self, project_id: str) -> AuditRun:
        response = await self._request(
            "run audit", "POST", f"/api/projects/{quote(project_id, safe='')}/audit"
        )
        data = self._json("run audit", response)
        if not isinstance(data, dict):
            raise TransportError("run audit", "unexpected payload")
        return AuditRun(logs=data.get("logs"))

    async def uninstall_package(self, project_id: str, package_name: str) -> str:
        """Remove a package on the server. Reports are not refreshed by this call."""
        response = await self._request(
            "uninstall package", "POST",
            f"/api/projects/{quote(project_id, safe='')}/uninstall/{quote(package_name, safe='@')}",
        )
        # Express sends the confirmation as plain text, but accept a JSON string too
        if response.headers.get("content-type", "").startswith("application/json"):
            data = self._json("uninstall package", response)
            return data if isinstance(data, str) else str(data)
        return response.text

    async def upload_project(self, archive: ProjectArchive) -> UploadResult:
        files = {"projectFile": (archive.filename, archive.content, archive.content_type)}
        response = await self._request("upload project", "POST", "/api/projects/upload", files=files)
        data = self._json("upload project", response)
        try:
            return UploadResult.model_validate(data)
        except SchemaError as e:
            raise TransportError("upload project", f"unexpected payload: {e}") from e
