import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import Callable, Dict, Optional

from npm_clean_audit.errors import TransportError, ValidationError
from npm_clean_audit.models import AuditRun, Project, ProjectArchive, ReportMetrics, ReportSet, WorkflowState
from npm_clean_audit.services.audit_service import AuditService
from npm_clean_audit.utils import report_metrics

logger = logging.getLogger(__name__)

NO_PROJECT_SELECTED = "no project selected"
LIST_FAILED = "Could not load the project list."
AUDIT_FAILED = "Audit failed."
UPLOAD_FAILED = "Upload failed."
NO_UPLOAD_FILE = "Please choose a file to upload."
EMPTY_PACKAGE_NAME = "Please enter a package name to uninstall."


class AuditWorkflow:
    """Sequences project selection, audits, uninstalls and uploads.

    All client-visible state lives in ``self.state``. Logs and errors are
    only written while the selection they were issued under is still
    current. Each report fetch takes a fresh token and only the holder of
    the latest token may replace the reports, so a slow fetch never
    overwrites the result of one issued after it. Audits and uninstalls of
    the same project run one at a time.
    """

    def __init__(self, service: AuditService, state: Optional[WorkflowState] = None,
                 on_upload_complete: Optional[Callable[[Project], None]] = None):
        self.service = service
        self.state = state if state is not None else WorkflowState()
        self.on_upload_complete = on_upload_complete
        self._generation = 0
        self._report_token = 0
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Counter = Counter()
        self._in_flight: Counter = Counter()

    @asynccontextmanager
    async def _serialized(self, project_id: str):
        if project_id not in self._locks:
            self._locks[project_id] = asyncio.Lock()
        lock = self._locks[project_id]
        self._lock_users[project_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[project_id] -= 1
            if not self._lock_users[project_id]:
                del self._lock_users[project_id]
                del self._locks[project_id]

    @asynccontextmanager
    async def _busy(self, flag: str):
        self._in_flight[flag] += 1
        setattr(self.state.busy, flag, True)
        try:
            yield
        finally:
            self._in_flight[flag] -= 1
            setattr(self.state.busy, flag, self._in_flight[flag] > 0)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _issue_report_token(self) -> int:
        self._report_token += 1
        return self._report_token

    async def _fetch_reports(self, project_id: str) -> None:
        token = self._issue_report_token()
        reports = await self.service.fetch_reports(project_id)
        if token == self._report_token:
            self.state.report_set = reports
        else:
            logger.debug("Discarding stale reports for project %s", project_id)

    def _require_selection(self) -> str:
        project_id = self.state.selected_project_id
        if not project_id:
            self.state.last_error = NO_PROJECT_SELECTED
            raise ValidationError(NO_PROJECT_SELECTED)
        return project_id

    async def start(self) -> None:
        await self.refresh_projects()

    async def refresh_projects(self) -> None:
        async with self._busy("listing"):
            try:
                self.state.projects = await self.service.list_projects()
            except TransportError:
                self.state.last_error = LIST_FAILED

    async def select(self, project_id: Optional[str]) -> None:
        self._generation += 1
        self._issue_report_token()
        self.state.selected_project_id = project_id
        self.state.report_set = ReportSet()
        self.state.last_logs = None
        if project_id is not None:
            await self.load_reports(project_id)

    async def load_reports(self, project_id: str) -> None:
        try:
            await self._fetch_reports(project_id)
        except TransportError as e:
            # A project that was never audited has no reports yet
            logger.debug("No reports for project %s: %s", project_id, e)

    async def run_audit(self) -> Optional[AuditRun]:
        project_id = self._require_selection()
        generation = self._generation
        async with self._serialized(project_id):
            return await self._audit(project_id, generation)

    async def _audit(self, project_id: str, generation: int) -> Optional[AuditRun]:
        previous_logs = self.state.last_logs
        if self._is_current(generation):
            self.state.last_error = None
            self.state.last_logs = None
        async with self._busy("auditing"):
            try:
                run = await self.service.run_audit(project_id)
            except TransportError:
                if self._is_current(generation):
                    self.state.last_error = AUDIT_FAILED
                    self.state.last_logs = previous_logs
                return None

            if not self._is_current(generation):
                logger.debug("Discarding audit of %s, selection changed", project_id)
                return run
            self.state.last_logs = run.logs
            try:
                await self._fetch_reports(project_id)
            except TransportError as e:
                logger.warning("Audit of %s finished but reports could not be fetched: %s", project_id, e)
            return run

    def set_pending_package(self, package_name: str) -> None:
        self.state.pending_package = package_name

    async def uninstall(self, package_name: str) -> Optional[str]:
        package_name = (package_name or "").strip()
        if not package_name:
            self.state.last_uninstall_message = EMPTY_PACKAGE_NAME
            raise ValidationError(EMPTY_PACKAGE_NAME)
        project_id = self._require_selection()
        generation = self._generation

        async with self._serialized(project_id):
            self.state.last_error = None
            async with self._busy("uninstalling"):
                try:
                    message = await self.service.uninstall_package(project_id, package_name)
                except TransportError:
                    if self._is_current(generation):
                        self.state.last_error = f"Uninstall of {package_name} failed."
                    return None
                if self._is_current(generation):
                    self.state.last_uninstall_message = message
                    self.state.pending_package = ""
                # Unused and installed counts are stale until the project is audited again
                await self._audit(project_id, generation)
                return message

    async def upload_project(self, archive: Optional[ProjectArchive]) -> Optional[Project]:
        if archive is None:
            self.state.last_error = NO_UPLOAD_FILE
            raise ValidationError(NO_UPLOAD_FILE)

        self.state.busy.uploading = True
        self.state.last_error = None
        try:
            try:
                result = await self.service.upload_project(archive)
            except TransportError:
                self.state.last_error = UPLOAD_FAILED
                return None
            if not result.success or result.project is None:
                logger.warning("Server rejected upload of %s", archive.filename)
                self.state.last_error = UPLOAD_FAILED
                return None

            await self.refresh_projects()
            await self.select(result.project.id)
            if self.on_upload_complete:
                self.on_upload_complete(result.project)
            return result.project
        finally:
            self.state.busy.uploading = False

    def metrics(self) -> ReportMetrics:
        return report_metrics(self.state.report_set)
