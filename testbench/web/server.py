"""FastAPI backend for testbench.

Provides a JSON API for running tests, managing projects and generating
tests. Bodies and responses use the camelCase wire names of the models.
"""

from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from testbench import __version__
from testbench.config import get_config
from testbench.core.errors import (
    APIError,
    ConfigError,
    ProjectNotFoundError,
    ValidationError,
)
from testbench.core.gemini_client import GeminiClient, append_test
from testbench.models.execution import ExecutionReport, ExecutionRequest
from testbench.models.project import Project, ProjectUpdate
from testbench.projects.registry import ProjectRegistry
from testbench.vm.executor import SandboxExecutor


# Models
class ProjectCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    source_code: Optional[str] = Field(default=None, alias="code")
    test_code: str = Field(default="", alias="testCode")


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_code: Optional[str] = Field(default=None, alias="sourceCode")
    instruction: Optional[str] = None
    project_id: Optional[str] = Field(default=None, alias="projectId")


# Create app
app = FastAPI(title="testbench", version=__version__)

# State (initialized on first use)
_registry: Optional[ProjectRegistry] = None
_executor: Optional[SandboxExecutor] = None
_gemini: Optional[GeminiClient] = None


def get_registry() -> ProjectRegistry:
    global _registry
    if _registry is None:
        config = get_config()
        config.paths.ensure()
        _registry = ProjectRegistry(config.paths.projects_db)
    return _registry


def get_executor() -> SandboxExecutor:
    global _executor
    if _executor is None:
        _executor = SandboxExecutor.from_config(get_config())
    return _executor


def get_gemini() -> GeminiClient:
    global _gemini
    if _gemini is None:
        _gemini = GeminiClient.from_config(get_config())
    return _gemini


def _report_json(report: ExecutionReport) -> dict:
    return report.model_dump(mode="json", by_alias=True)


def _project_json(project: Project) -> dict:
    return project.model_dump(mode="json", by_alias=True)


async def _load_project(project_id: str) -> Project:
    project = await get_registry().get(project_id)
    if project is None:
        raise ProjectNotFoundError(project_id)
    return project


# Error mapping
@app.exception_handler(ProjectNotFoundError)
async def project_not_found_handler(request, exc: ProjectNotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(ConfigError)
async def config_error_handler(request, exc: ConfigError):
    return JSONResponse(status_code=503, content={"detail": exc.message})


@app.exception_handler(APIError)
async def api_error_handler(request, exc: APIError):
    return JSONResponse(status_code=502, content={"detail": exc.message})


@app.get("/api/health")
async def health():
    """Liveness and configuration summary."""
    config = get_config()
    return {
        "status": "ok",
        "version": __version__,
        "timeoutSeconds": config.execution.timeout_seconds,
        "generationAvailable": bool(config.api.gemini_api_key),
    }


@app.post("/api/run")
async def run_tests(request: ExecutionRequest):
    """Run test code against source code and return the report."""
    report = await get_executor().execute(request.source_code, request.test_code)
    return _report_json(report)


@app.get("/api/projects")
async def list_projects():
    """List all projects, seeding the starter project on first use."""
    registry = get_registry()
    await registry.ensure_default()
    projects = await registry.list_all()
    return [_project_json(project) for project in projects]


@app.post("/api/projects", status_code=201)
async def create_project(request: ProjectCreateRequest):
    """Create a project."""
    project = await get_registry().create(
        request.name,
        source_code=request.source_code,
        test_code=request.test_code,
    )
    return _project_json(project)


@app.get("/api/projects/{project_id}")
async def get_project(project_id: str):
    """Get a project."""
    return _project_json(await _load_project(project_id))


@app.put("/api/projects/{project_id}")
async def update_project(project_id: str, changes: ProjectUpdate):
    """Update a project's name or code."""
    project = await get_registry().update(project_id, changes)
    return _project_json(project)


@app.delete("/api/projects/{project_id}")
async def delete_project(project_id: str):
    """Delete a project."""
    deleted = await get_registry().delete(project_id)
    if not deleted:
        raise ProjectNotFoundError(project_id)
    return {"success": True}


@app.post("/api/projects/{project_id}/run")
async def run_project(project_id: str):
    """Run a stored project's tests."""
    project = await _load_project(project_id)
    report = await get_executor().execute(project.source_code, project.test_code)
    return _report_json(report)


@app.post("/api/generate")
async def generate_tests(request: GenerateRequest):
    """Generate tests with AI.

    With ``projectId`` the project's source is used and the result saved:
    a generated suite replaces its tests, a single test (``instruction``)
    is appended.
    """
    project = None
    source_code = request.source_code
    if request.project_id:
        project = await _load_project(request.project_id)
        source_code = project.source_code

    if not source_code or not source_code.strip():
        raise HTTPException(400, "Source code is required")

    test_code = await get_gemini().generate_tests(source_code, request.instruction)

    if project is None:
        return {"testCode": test_code}

    if request.instruction:
        test_code = append_test(project.test_code, test_code)
    updated = await get_registry().update(project.id, ProjectUpdate(test_code=test_code))
    return {"testCode": test_code, "project": _project_json(updated)}
