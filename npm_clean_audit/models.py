from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class Project(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class ReportSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    installed: Optional[str] = None
    unused: Optional[str] = None
    security: Optional[str] = None
    git_diff: Optional[str] = Field(default=None, alias="gitDiff")

    @property
    def has_git_diff(self) -> bool:
        return bool(self.git_diff)



class AuditRun(BaseModel):
    logs: Any = None


class UploadResult(BaseModel):
    success: bool = False
    project: Optional[Project] = None


class ProjectArchive(BaseModel):
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class VulnerabilitySummary(BaseModel):
    low: int = 0
    moderate: int = 0
    high: int = 0
    critical: int = 0

    @property
    def total(self) -> int:
        return self.low + self.moderate + self.high + self.critical


class ReportMetrics(BaseModel):
    unused_packages: List[Any]
    dependency_count: int
    vulnerabilities: VulnerabilitySummary
    total_vulnerabilities: int
    severity: str
    has_git_diff: bool


class BusyFlags(BaseModel):
    listing: bool = False
    auditing: bool = False
    uninstalling: bool = False
    uploading: bool = False


class WorkflowState(BaseModel):
    projects: List[Project] = Field(default_factory=list)
    selected_project_id: Optional[str] = None
    report_set: ReportSet = Field(default_factory=ReportSet)
    last_logs: Any = None
    busy: BusyFlags = Field(default_factory=BusyFlags)
    last_error: Optional[str] = None
    last_uninstall_message: Optional[str] = None
    pending_package: str = ""

    def project_names(self) -> Dict[str, str]:
        return {p.id: p.name for p in self.projects}
