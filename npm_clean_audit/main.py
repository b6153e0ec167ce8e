from contextlib import asynccontextmanager
from typing import List, Optional
from fastapi import FastAPI, Form, HTTPException, Request, UploadFile
from npm_clean_audit.config import Settings, configure_logging
from npm_clean_audit.errors import ValidationError
from npm_clean_audit.models import Project, ProjectArchive
from npm_clean_audit.schemas import DashboardResponse
from npm_clean_audit.services.audit_service import AuditService
from npm_clean_audit.services.workflow_service import AuditWorkflow


def dashboard(workflow: AuditWorkflow) -> DashboardResponse:
    state = workflow.state
    return DashboardResponse(
        projects=state.projects,
        selected_project_id=state.selected_project_id,
        selected_project_name=state.project_names().get(state.selected_project_id),
        reports=state.report_set,
        metrics=workflow.metrics(),
        logs=state.last_logs,
        busy=state.busy,
        error=state.last_error,
        uninstall_message=state.last_uninstall_message,
        pending_package=state.pending_package,
    )


def create_app(workflow: Optional[AuditWorkflow] = None) -> FastAPI:
    if workflow is None:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        workflow = AuditWorkflow(AuditService(settings.api_url, timeout=settings.timeout))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.workflow.start()
        yield

    app = FastAPI(title="NPM Clean Audit", lifespan=lifespan)
    app.state.workflow = workflow

    def get_workflow(request: Request) -> AuditWorkflow:
        return request.app.state.workflow

    @app.get("/projects", response_model=List[Project])
    async def list_projects(request: Request):
        return get_workflow(request).state.projects

    @app.post("/projects/refresh", response_model=DashboardResponse)
    async def refresh_projects(request: Request):
        wf = get_workflow(request)
        await wf.refresh_projects()
        return dashboard(wf)

    @app.get("/dashboard", response_model=DashboardResponse)
    async def show_dashboard(request: Request):
        return dashboard(get_workflow(request))

    @app.post("/select", response_model=DashboardResponse)
    async def select_project(request: Request, project_id: Optional[str] = Form(None)):
        wf = get_workflow(request)
        await wf.select(project_id or None)
        return dashboard(wf)

    @app.post("/audit", response_model=DashboardResponse)
    async def run_audit(request: Request):
        wf = get_workflow(request)
        try:
            await wf.run_audit()
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return dashboard(wf)

    @app.post("/uninstall", response_model=DashboardResponse)
    async def uninstall(request: Request, package_name: str = Form("")):
        wf = get_workflow(request)
        wf.set_pending_package(package_name)
        try:
            await wf.uninstall(package_name)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return dashboard(wf)

    @app.post("/upload", response_model=DashboardResponse)
    async def upload(request: Request, file: UploadFile = None):
        wf = get_workflow(request)
        archive = None
        if file:
            archive = ProjectArchive(
                filename=file.filename or "project.zip",
                content=await file.read(),
                content_type=file.content_type or "application/octet-stream",
            )
        try:
            await wf.upload_project(archive)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return dashboard(wf)

    return app


app = create_app()
