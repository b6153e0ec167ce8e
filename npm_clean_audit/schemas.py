from pydantic import BaseModel
from typing import Any, List, Optional

from npm_clean_audit.models import BusyFlags, Project, ReportMetrics, ReportSet


class DashboardResponse(BaseModel):
    projects: List[Project]
    selected_project_id: Optional[str]
    selected_project_name: Optional[str]
    reports: ReportSet
    metrics: ReportMetrics
    logs: Any
    busy: BusyFlags
    error: Optional[str]
    uninstall_message: Optional[str]
    pending_package: str
