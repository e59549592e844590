"""
FastAPI Backend for the Capacity Planner

REST surface over the planning queries and the namespace services.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from . import __version__
from .config import Config
from .errors import (
    CapacityError,
    NamespaceNotConfigured,
    ReadOnlyNamespace,
    UnknownIteration,
    UnknownMember,
    UnknownScenario,
)
from .forecaster import DEFAULT_FORECAST_WEEKS
from .models import TeamMember
from .planner import CapacityPlanner
from .scenarios import TeamChange, TeamChangeType
from .storage import KeyValueStore, ProjectGroup, ProjectGroupStore
from .utils.logging import setup_logging


logger = logging.getLogger(__name__)


# Global instances
config = Config()
store: KeyValueStore = config.create_store()

# Planners keep the loaded tracker data and velocity cache per namespace
_planners: dict[str, CapacityPlanner] = {}


def configure(new_store: KeyValueStore, project_key: Optional[str] = None) -> None:
    """Swap the backing store (and optionally the default project) and drop cached planners."""
    global store
    store = new_store
    if project_key is not None:
        config.set("project", "key", project_key)
    _planners.clear()


def get_planner(project: Optional[str] = None, group: Optional[str] = None) -> CapacityPlanner:
    if group:
        cache_key = f"group:{group}"
        if cache_key not in _planners:
            namespace = ProjectGroupStore(store).namespace(group)
            _planners[cache_key] = CapacityPlanner(store, namespace.project_key, namespace=namespace)
        return _planners[cache_key]

    project_key = project or config.project_key
    if not project_key:
        raise NamespaceNotConfigured()
    if project_key not in _planners:
        _planners[project_key] = CapacityPlanner(
            store,
            project_key,
            roster_seed=config.team_members,
            policy_seed=config.policy_seed,
        )
    return _planners[project_key]


# Pydantic models for API
class DataPayload(BaseModel):
    issues: Optional[list[dict[str, Any]]] = None
    iterations: Optional[list[dict[str, Any]]] = None
    milestones: Optional[list[dict[str, Any]]] = None


class MemberRequest(BaseModel):
    username: str
    display_name: Optional[str] = None
    role: Optional[str] = None
    employee_id: Optional[str] = None
    avatar_url: Optional[str] = None
    base_weekly_hours: Optional[float] = None


class MemberUpdate(BaseModel):
    display_name: Optional[str] = None
    role: Optional[str] = None
    employee_id: Optional[str] = None
    avatar_url: Optional[str] = None
    base_weekly_hours: Optional[float] = None


class AbsenceRequest(BaseModel):
    username: str
    start: str
    end: str
    type: str = "vacation"
    reason: str = ""


class CsvImportRequest(BaseModel):
    text: str


class OverrideRequest(BaseModel):
    iteration_id: str
    username: str
    hours: Optional[float] = None
    reason: str = ""
    iteration_name: Optional[str] = None


class PolicyUpdate(BaseModel):
    velocity_mode: Optional[str] = None
    metric_type: Optional[str] = None
    static_hours_per_story_point: Optional[float] = None
    static_hours_per_issue: Optional[float] = None
    velocity_lookback_iterations: Optional[int] = None
    default_weekly_capacity: Optional[float] = None


class ScenarioRequest(BaseModel):
    name: str
    description: str = ""


class TeamChangeRequest(BaseModel):
    type: str
    week: int = Field(ge=1)
    username: str
    display_name: Optional[str] = None
    role: Optional[str] = None
    weekly_hours: Optional[float] = None
    ramp_up_weeks: int = 4
    new_weekly_hours: Optional[float] = None


class ProjectGroupRequest(BaseModel):
    name: str
    project_keys: list[str]


# Lifespan context manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging(config.log_level)
    logger.info("Capacity Planner API starting up (project: %s)", config.project_key)
    yield
    logger.info("Capacity Planner API shutting down")


# Create FastAPI app
app = FastAPI(
    title="Team Capacity Planner",
    description="API for team capacity, absence planning, velocity and forecasts",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CapacityError)
async def capacity_error_handler(request: Request, exc: CapacityError):
    if isinstance(exc, (UnknownMember, UnknownIteration, UnknownScenario)):
        status_code = 404
    elif isinstance(exc, ReadOnlyNamespace):
        status_code = 409
    else:
        status_code = 400
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": __version__,
        "project": config.project_key,
        "persistent": config.store_path is not None,
    }


# Tracker data
@app.put("/api/data")
async def load_data(payload: DataPayload, project: Optional[str] = None):
    """Replace the issues, iterations and milestones the queries run against."""
    planner = get_planner(project)
    planner.load(payload.issues, payload.iterations, payload.milestones)
    return {
        "issues": len(planner.issues),
        "iterations": len(planner.catalogue),
        "milestones": len(planner.milestones),
    }


# Roster endpoints
@app.get("/api/team")
async def list_team(project: Optional[str] = None, group: Optional[str] = None, include_inactive: bool = False):
    planner = get_planner(project, group)
    return {"members": [m.to_dict() for m in planner.roster.members(include_inactive)]}


@app.post("/api/team", status_code=201)
async def add_member(request: MemberRequest, project: Optional[str] = None):
    planner = get_planner(project)
    member = planner.roster.admit(TeamMember(**request.model_dump()))
    return member.to_dict()


@app.patch("/api/team/{username}")
async def update_member(username: str, request: MemberUpdate, project: Optional[str] = None):
    planner = get_planner(project)
    return planner.roster.update(username, **request.model_dump(exclude_unset=True)).to_dict()


@app.delete("/api/team/{username}")
async def remove_member(username: str, project: Optional[str] = None):
    planner = get_planner(project)
    return planner.roster.remove(username).to_dict()


@app.post("/api/team/import")
async def import_team(project: Optional[str] = None):
    """Admit every issue assignee that is not on the roster yet."""
    planner = get_planner(project)
    return {"imported": planner.import_team_from_issues()}


# Absence endpoints
@app.get("/api/absences")
async def list_absences(
    start: Optional[str] = None,
    end: Optional[str] = None,
    username: Optional[str] = None,
    project: Optional[str] = None,
    group: Optional[str] = None
):
    planner = get_planner(project, group)
    calendar = planner.absences.snapshot()
    if username:
        absences = calendar.for_user(username, start, end)
    elif start and end:
        absences = calendar.in_range(start, end)
    else:
        absences = calendar.all()
    return {"absences": [a.to_dict() for a in absences]}


@app.post("/api/absences", status_code=201)
async def add_absence(request: AbsenceRequest, project: Optional[str] = None):
    planner = get_planner(project)
    absence = planner.absences.add(request.username, request.start, request.end, request.type, request.reason)
    return absence.to_dict()


@app.delete("/api/absences/{absence_id}")
async def remove_absence(absence_id: str, project: Optional[str] = None):
    planner = get_planner(project)
    planner.absences.remove(absence_id)
    return {"removed": absence_id}


@app.post("/api/absences/import")
async def import_absences(request: CsvImportRequest, project: Optional[str] = None):
    planner = get_planner(project)
    return planner.absences.import_csv(request.text).to_dict()


@app.get("/api/absences/export", response_class=PlainTextResponse)
async def export_absences(start: Optional[str] = None, end: Optional[str] = None, project: Optional[str] = None):
    planner = get_planner(project)
    return PlainTextResponse(planner.absences.export_csv(start, end), media_type="text/csv")


@app.get("/api/absences/stats")
async def absence_stats(start: str, end: str, project: Optional[str] = None, group: Optional[str] = None):
    return get_planner(project, group).team_absence_stats(start, end)


# Override endpoints
@app.get("/api/overrides")
async def list_overrides(project: Optional[str] = None):
    planner = get_planner(project)
    return {"overrides": [o.to_dict() for o in planner.overrides.all()]}


@app.put("/api/overrides")
async def set_override(request: OverrideRequest, project: Optional[str] = None):
    """Set a member's final hours for an iteration; ``hours: null`` clears it."""
    planner = get_planner(project)
    override = planner.overrides.set(
        request.iteration_id, request.username, request.hours, request.reason, request.iteration_name
    )
    return {"override": override.to_dict() if override else None}


# Policy endpoints
@app.get("/api/policy")
async def get_policy(project: Optional[str] = None):
    return get_planner(project).policy.load().to_dict()


@app.patch("/api/policy")
async def update_policy(request: PolicyUpdate, project: Optional[str] = None):
    changes = request.model_dump(exclude_unset=True)
    if any(value is None for value in changes.values()):
        raise HTTPException(status_code=400, detail="Policy options cannot be null")
    return get_planner(project).policy.update(**changes).to_dict()


@app.post("/api/policy/reset")
async def reset_policy(project: Optional[str] = None):
    return get_planner(project).policy.reset().to_dict()


# Scenario endpoints
@app.get("/api/scenarios")
async def list_scenarios(project: Optional[str] = None):
    return {"scenarios": [s.to_dict() for s in get_planner(project).scenarios.all()]}


@app.post("/api/scenarios", status_code=201)
async def create_scenario(request: ScenarioRequest, project: Optional[str] = None):
    return get_planner(project).scenarios.create(request.name, request.description).to_dict()


@app.get("/api/scenarios/{scenario_id}")
async def get_scenario(scenario_id: str, project: Optional[str] = None):
    return get_planner(project).scenarios.get(scenario_id).to_dict()


@app.delete("/api/scenarios/{scenario_id}")
async def delete_scenario(scenario_id: str, project: Optional[str] = None):
    get_planner(project).scenarios.delete(scenario_id)
    return {"deleted": scenario_id}


@app.post("/api/scenarios/{scenario_id}/changes", status_code=201)
async def add_team_change(scenario_id: str, request: TeamChangeRequest, project: Optional[str] = None):
    data = request.model_dump()
    change = TeamChange(
        type=TeamChangeType.parse(data.pop("type")),
        week=data.pop("week"),
        username=data.pop("username"),
        **data
    )
    return get_planner(project).scenarios.add_change(scenario_id, change).to_dict()


@app.delete("/api/scenarios/{scenario_id}/changes/{change_id}")
async def remove_team_change(scenario_id: str, change_id: str, project: Optional[str] = None):
    get_planner(project).scenarios.remove_change(scenario_id, change_id)
    return {"removed": change_id}


@app.get("/api/scenarios/{scenario_id}/forecast")
async def scenario_forecast(scenario_id: str, weeks: int = DEFAULT_FORECAST_WEEKS, project: Optional[str] = None):
    return get_planner(project).scenario_forecast(scenario_id, weeks)


# Project groups
@app.get("/api/groups")
async def list_groups():
    return {"groups": [g.to_dict() for g in ProjectGroupStore(store).all()]}


@app.put("/api/groups/{group_id}")
async def save_group(group_id: str, request: ProjectGroupRequest):
    group = ProjectGroup(id=group_id, name=request.name, project_keys=request.project_keys)
    _planners.pop(f"group:{group_id}", None)
    return ProjectGroupStore(store).save(group).to_dict()


@app.delete("/api/groups/{group_id}")
async def delete_group(group_id: str):
    ProjectGroupStore(store).remove(group_id)
    _planners.pop(f"group:{group_id}", None)
    return {"deleted": group_id}


# Planning queries
@app.get("/api/capacity/{iteration}")
async def capacity_breakdown(iteration: str, project: Optional[str] = None):
    """Per-member capacity for an iteration, by id or name."""
    return get_planner(project).capacity_breakdown(iteration)


@app.get("/api/velocity")
async def team_velocity(project: Optional[str] = None):
    return get_planner(project).team_velocity()


@app.get("/api/velocity/{username}")
async def member_velocity(username: str, project: Optional[str] = None):
    return get_planner(project).member_velocity(username)


@app.get("/api/workload")
async def workload_distribution(iteration: Optional[str] = None, project: Optional[str] = None):
    return get_planner(project).workload_distribution(iteration)


@app.get("/api/burnout")
async def burnout_risks(project: Optional[str] = None):
    return {"risks": get_planner(project).burnout_risks()}


@app.get("/api/forecast")
async def forecast(weeks: int = DEFAULT_FORECAST_WEEKS, project: Optional[str] = None):
    return get_planner(project).forecast(weeks)


# Run with: uvicorn capacity_core.api:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
