"""HTTP routes for the reposeek service.

Every handler returns JSON. Domain errors map onto their HTTP status via
ReposeekError.http_status; anything else is logged and returned as 500.
"""

from __future__ import annotations

import functools
import importlib.metadata
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from reposeek.core.errors import InternalError, ReposeekError
from reposeek.daemon.schemas import (
    CreateProjectRequest,
    HistorySyncRequest,
    ReindexRequest,
    parse_body,
)
from reposeek.pipeline.provisioner import CreateProjectCommand

if TYPE_CHECKING:
    from reposeek.daemon.lifecycle import ServerController
    from reposeek.pipeline.commits import CommitRecord
    from reposeek.pipeline.ops import CreationStatusView

logger = structlog.get_logger()

Handler = Callable[[Request], Awaitable[JSONResponse]]


def _get_version() -> str:
    """Get package version from installed metadata."""
    try:
        return importlib.metadata.version("reposeek")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def error_response(error: ReposeekError) -> JSONResponse:
    return JSONResponse({"success": False, **error.to_dict()}, status_code=error.http_status)


def _json_errors(handler: Handler) -> Handler:
    """Translate exceptions raised by ``handler`` into JSON error responses."""

    @functools.wraps(handler)
    async def wrapper(request: Request) -> JSONResponse:
        try:
            return await handler(request)
        except ReposeekError as e:
            log = logger.warning if e.http_status < 500 else logger.error
            log("request_failed", path=request.url.path, error=e.error_name, message=e.message)
            return error_response(e)
        except Exception as e:
            logger.exception("request_crashed", path=request.url.path)
            return error_response(InternalError.unexpected(str(e)))

    return wrapper


def _commit_to_dict(commit: CommitRecord) -> dict[str, Any]:
    return {
        "id": commit.id,
        "commitHash": commit.commit_hash,
        "commitMessage": commit.commit_message,
        "commitAuthorName": commit.author_name,
        "commitAuthorAvatar": commit.author_avatar,
        "commitDate": _iso(commit.commit_date),
        "summary": commit.summary,
        "modifiedFiles": commit.modified_files,
        "needsReindex": commit.needs_reindex,
    }


def _status_to_dict(view: CreationStatusView) -> dict[str, Any]:
    creation = view.creation
    project = view.project
    return {
        "id": creation.id,
        "status": creation.status.value,
        "fileCount": creation.file_count,
        "projectId": creation.project_id,
        "error": creation.error,
        "project": (
            {
                "id": project.id,
                "name": project.name,
                "repositoryUrl": project.repository_url,
                "branch": project.branch,
                "createdAt": _iso(project.created_at),
            }
            if project is not None
            else None
        ),
        "indexingStatus": {
            "hasSourceCodeEmbeddings": view.has_source_code_embeddings,
            "embeddingsCount": view.embeddings_count,
            "isFullyIndexed": view.is_fully_indexed,
        },
    }


def create_routes(controller: ServerController) -> list[Route]:
    """Create HTTP routes bound to the server controller."""
    start_time = time.time()
    version = _get_version()

    async def health(request: Request) -> JSONResponse:
        """Liveness check with background task counters."""
        _ = request  # unused
        runner = controller.coordinator.runner.status
        return JSONResponse(
            {
                "status": "healthy",
                "version": version,
                "uptime_seconds": round(time.time() - start_time, 1),
                "tasks": {
                    "state": runner.state.value,
                    "active": runner.active,
                    "completed": runner.completed,
                    "failed": runner.failed,
                    "last_error": runner.last_error,
                },
            }
        )

    @_json_errors
    async def create_project(request: Request) -> JSONResponse:
        """Provision a project; the full index continues after the response."""
        body = await parse_body(request, CreateProjectRequest)
        result = await controller.coordinator.create_project(
            CreateProjectCommand(
                name=body.name,
                repository_url=body.repository_url,
                branch=body.branch,
                user_id=body.user_id,
                request_id=body.request_id,
            )
        )
        return JSONResponse(
            {
                "success": True,
                "projectId": result.project_id,
                "requestId": result.request_id,
                "fileCount": result.file_count,
                "message": "Project created successfully, indexing in progress",
            }
        )

    @_json_errors
    async def reindex_commits(request: Request) -> JSONResponse:
        body = await parse_body(request, ReindexRequest)
        count = controller.coordinator.schedule_reindex(
            body.project_id, body.repository_url, body.commit_ids, body.credential
        )
        return JSONResponse(
            {"status": "processing", "projectId": body.project_id, "commitCount": count},
            status_code=202,
        )

    @_json_errors
    async def creation_status(request: Request) -> JSONResponse:
        request_id = request.path_params["request_id"]
        view = controller.coordinator.creation_status(request_id)
        if view is None:
            return JSONResponse(
                {"success": False, "error": "NOT_FOUND", "message": "Project creation not found"},
                status_code=404,
            )
        return JSONResponse(_status_to_dict(view))

    @_json_errors
    async def sync_commits(request: Request) -> JSONResponse:
        project_id = request.path_params["project_id"]
        body = await parse_body(request, HistorySyncRequest, allow_empty=True)
        controller.coordinator.schedule_history_sync(
            project_id,
            is_project_creation=body.is_project_creation,
            credential=body.credential,
        )
        return JSONResponse({"status": "processing", "projectId": project_id}, status_code=202)

    @_json_errors
    async def list_commits(request: Request) -> JSONResponse:
        project_id = request.path_params["project_id"]
        try:
            limit = int(request.query_params.get("limit", "50"))
        except ValueError:
            limit = 50
        limit = max(1, min(limit, 200))
        commits = controller.coordinator.list_commits(project_id, limit)
        return JSONResponse(
            {"projectId": project_id, "commits": [_commit_to_dict(c) for c in commits]}
        )

    @_json_errors
    async def user_credits(request: Request) -> JSONResponse:
        user_id = request.path_params["user_id"]
        balance = controller.coordinator.credit_balance(user_id)
        return JSONResponse({"userId": user_id, "credits": balance})

    return [
        Route("/health", health, methods=["GET"]),
        Route("/api/projects", create_project, methods=["POST"]),
        Route("/api/reindex-commits", reindex_commits, methods=["POST"]),
        Route("/api/project-creations/{request_id}", creation_status, methods=["GET"]),
        Route("/api/projects/{project_id}/commits/sync", sync_commits, methods=["POST"]),
        Route("/api/projects/{project_id}/commits", list_commits, methods=["GET"]),
        Route("/api/users/{user_id}/credits", user_credits, methods=["GET"]),
    ]
