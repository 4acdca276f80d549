"""Tool registry and dispatch layer.

This module:
- defines the allow-listed tools (public contract surface) as an immutable registry
- builds a per-server runtime from host-provided config
- validates arguments against each tool's input schema before any Azure DevOps call
- runs criteria -> fetch -> paging -> projection for each tool
- converts every failure into an error-flagged response (one audit event per call)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from .ado_client import AzureDevOpsClient
from .audit import (OUTCOME_DENIED, OUTCOME_FAILED, OUTCOME_SUCCEEDED,
                    AuditLogger, build_event, new_correlation_id)
from .auth import AzureDevOpsAuth
from .config import AppConfig, load_config_from_env
from .criteria import (PULL_REQUEST_QUERY_TYPES, PULL_REQUEST_STATUSES,
                       THREAD_STATUSES, VERSION_TYPES, build_commit_criteria,
                       build_new_comment, build_new_thread,
                       build_pull_request_criteria, build_pull_request_query,
                       build_ref_criteria, lookup_enum)
from .errors import (PRE_FLIGHT_CODES, SafeError, entity_not_found,
                     internal_error, invalid_enum_value, invalid_parameters,
                     safe_error_to_result)
from .git_api import GitApi
from .identity import IdentityResolver, resolve_pull_request_identities
from .paging import (page, paginate, sort_branch_names, sort_by_id,
                     sort_repositories)
from .policy import Policy
from .projection import (branch_short_names, live_comments,
                         project_comments, project_created_comment,
                         project_created_thread, project_pull_request,
                         project_repository, project_threads)
from .safety import enforce_max_bytes, redact_text, validate_no_secrets

logger = logging.getLogger(__name__)

# Operations are published to MCP clients as "repo_<operation>".
TOOL_NAME_PREFIX = "repo_"

DEFAULT_TOP = 100
DEFAULT_SKIP = 0

_TOP = {"type": "integer", "minimum": 0, "default": DEFAULT_TOP, "description": "The maximum number of items to return."}
_SKIP = {"type": "integer", "minimum": 0, "default": DEFAULT_SKIP, "description": "The number of items to skip."}
_REPOSITORY_ID = {"type": "string", "minLength": 1, "description": "The ID of the repository."}
_PROJECT = {"type": "string", "minLength": 1, "description": "The name or ID of the Azure DevOps project."}
_OPTIONAL_PROJECT = {"type": "string", "minLength": 1, "description": "Project ID or project name (optional)."}
_PULL_REQUEST_ID = {"type": "integer", "minimum": 1, "description": "The ID of the pull request."}
_FULL_RESPONSE = {
    "type": "boolean",
    "default": False,
    "description": "Return the full Azure DevOps JSON instead of trimmed data.",
}
_FILTER_CONTAINS = {
    "type": "string",
    "description": "Filter to find branches that contain this string in their name.",
}

_PULL_REQUEST_FILTERS: dict[str, Any] = {
    "top": _TOP,
    "skip": _SKIP,
    "created_by_me": {
        "type": "boolean",
        "default": False,
        "description": "Filter pull requests created by the current user.",
    },
    "created_by_user": {
        "type": "string",
        "minLength": 1,
        "description": "Filter pull requests created by a specific user (email or unique name). "
        "Takes precedence over created_by_me if both are provided.",
    },
    "i_am_reviewer": {
        "type": "boolean",
        "default": False,
        "description": "Filter pull requests where the current user is a reviewer.",
    },
    "status": {
        "type": "string",
        "enum": list(PULL_REQUEST_STATUSES),
        "default": "Active",
        "description": "Filter pull requests by status. Defaults to 'Active'.",
    },
}

TOOL_METADATA: dict[str, dict[str, Any]] = {
    "list_repos_by_project": {
        "description": "Retrieve a list of repositories for a given project.",
        "inputSchema": {
            "type": "object",
            "required": ["project"],
            "properties": {
                "project": _PROJECT,
                "top": _TOP,
                "skip": _SKIP,
                "repoNameFilter": {
                    "type": "string",
                    "description": "Only return repositories whose name contains this string (case-insensitive).",
                },
            },
            "additionalProperties": False,
        },
    },
    "list_pull_requests_by_repo": {
        "description": "Retrieve a list of pull requests for a given repository.",
        "inputSchema": {
            "type": "object",
            "required": ["repositoryId"],
            "properties": {"repositoryId": _REPOSITORY_ID, **_PULL_REQUEST_FILTERS},
            "additionalProperties": False,
        },
    },
    "list_pull_requests_by_project": {
        "description": "Retrieve a list of pull requests for a given project Id or Name.",
        "inputSchema": {
            "type": "object",
            "required": ["project"],
            "properties": {"project": _PROJECT, **_PULL_REQUEST_FILTERS},
            "additionalProperties": False,
        },
    },
    "list_branches_by_repo": {
        "description": "Retrieve a list of branches for a given repository.",
        "inputSchema": {
            "type": "object",
            "required": ["repositoryId"],
            "properties": {"repositoryId": _REPOSITORY_ID, "top": _TOP, "filterContains": _FILTER_CONTAINS},
            "additionalProperties": False,
        },
    },
    "list_my_branches_by_repo": {
        "description": "Retrieve a list of my branches for a given repository Id.",
        "inputSchema": {
            "type": "object",
            "required": ["repositoryId"],
            "properties": {"repositoryId": _REPOSITORY_ID, "top": _TOP, "filterContains": _FILTER_CONTAINS},
            "additionalProperties": False,
        },
    },
    "list_pull_request_threads": {
        "description": "Retrieve a list of comment threads for a pull request, with file and line context.",
        "inputSchema": {
            "type": "object",
            "required": ["repositoryId", "pullRequestId"],
            "properties": {
                "repositoryId": _REPOSITORY_ID,
                "pullRequestId": _PULL_REQUEST_ID,
                "project": _OPTIONAL_PROJECT,
                "iteration": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "The iteration ID for which to retrieve threads. Defaults to the latest iteration.",
                },
                "baseIteration": {
                    "type": "integer",
                    "minimum": 0,
                    "description": "The base iteration ID for which to retrieve threads.",
                },
                "top": _TOP,
                "skip": _SKIP,
                "fullResponse": _FULL_RESPONSE,
            },
            "additionalProperties": False,
        },
    },
    "list_pull_request_thread_comments": {
        "description": "Retrieve a list of comments in a pull request thread.",
        "inputSchema": {
            "type": "object",
            "required": ["repositoryId", "pullRequestId", "threadId"],
            "properties": {
                "repositoryId": _REPOSITORY_ID,
                "pullRequestId": _PULL_REQUEST_ID,
                "threadId": {"type": "integer", "minimum": 1, "description": "The ID of the thread."},
                "project": _OPTIONAL_PROJECT,
                "top": _TOP,
                "skip": _SKIP,
                "fullResponse": _FULL_RESPONSE,
            },
            "additionalProperties": False,
        },
    },
    "get_repo_by_name_or_id": {
        "description": "Get the repository by project and repository name or ID.",
        "inputSchema": {
            "type": "object",
            "required": ["project", "repositoryNameOrId"],
            "properties": {
                "project": _PROJECT,
                "repositoryNameOrId": {"type": "string", "minLength": 1, "description": "Repository name or ID."},
            },
            "additionalProperties": False,
        },
    },
    "get_branch_by_name": {
        "description": "Get a branch by its name.",
        "inputSchema": {
            "type": "object",
            "required": ["repositoryId", "branchName"],
            "properties": {
                "repositoryId": _REPOSITORY_ID,
                "branchName": {
                    "type": "string",
                    "minLength": 1,
                    "description": "The name of the branch to retrieve, e.g. 'main' or 'feature-branch'.",
                },
            },
            "additionalProperties": False,
        },
    },
    "get_pull_request_by_id": {
        "description": "Get a pull request by its ID.",
        "inputSchema": {
            "type": "object",
            "required": ["repositoryId", "pullRequestId"],
            "properties": {
                "repositoryId": _REPOSITORY_ID,
                "pullRequestId": _PULL_REQUEST_ID,
                "includeWorkItemRefs": {
                    "type": "boolean",
                    "default": False,
                    "description": "Whether to reference work items associated with the pull request.",
                },
            },
            "additionalProperties": False,
        },
    },
    "search_commits": {
        "description": "Searches for commits in a repository.",
        "inputSchema": {
            "type": "object",
            "required": ["project", "repository"],
            "properties": {
                "project": _PROJECT,
                "repository": {"type": "string", "minLength": 1, "description": "Repository name or ID."},
                "fromCommit": {"type": "string", "minLength": 1, "description": "Starting commit ID."},
                "toCommit": {"type": "string", "minLength": 1, "description": "Ending commit ID."},
                "version": {
                    "type": "string",
                    "minLength": 1,
                    "description": "The name of the branch, tag or commit to filter commits by.",
                },
                "versionType": {
                    "type": "string",
                    "enum": list(VERSION_TYPES),
                    "default": "Branch",
                    "description": "The meaning of the version parameter.",
                },
                "skip": {**_SKIP, "description": "Number of commits to skip."},
                "top": {**_TOP, "default": 10, "description": "Maximum number of commits to return."},
                "includeLinks": {"type": "boolean", "default": False, "description": "Include commit links."},
                "includeWorkItems": {
                    "type": "boolean",
                    "default": False,
                    "description": "Include associated work items.",
                },
            },
            "additionalProperties": False,
        },
    },
    "list_pull_requests_by_commits": {
        "description": "Lists pull requests by commit IDs to find which pull requests contain specific commits.",
        "inputSchema": {
            "type": "object",
            "required": ["project", "repository", "commits"],
            "properties": {
                "project": _PROJECT,
                "repository": {"type": "string", "minLength": 1, "description": "Repository name or ID."},
                "commits": {
                    "type": "array",
                    "minItems": 1,
                    "items": {"type": "string", "minLength": 1},
                    "description": "Commit IDs to query for.",
                },
                "queryType": {
                    "type": "string",
                    "enum": list(PULL_REQUEST_QUERY_TYPES),
                    "default": "LastMergeCommit",
                    "description": "Type of query to perform.",
                },
            },
            "additionalProperties": False,
        },
    },
    "create_pull_request_comment": {
        "description": "Create a comment in a pull request thread or create a new thread with a comment.",
        "inputSchema": {
            "type": "object",
            "required": ["repositoryId", "pullRequestId", "content"],
            "properties": {
                "repositoryId": _REPOSITORY_ID,
                "pullRequestId": _PULL_REQUEST_ID,
                "content": {"type": "string", "minLength": 1, "description": "The comment content (markdown)."},
                "threadId": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Existing thread ID to add the comment to. If omitted, a new thread is created.",
                },
                "status": {
                    "type": "string",
                    "enum": list(THREAD_STATUSES),
                    "default": "active",
                    "description": "Thread status (only used when creating a new thread).",
                },
                "filePath": {
                    "type": "string",
                    "minLength": 1,
                    "description": "File path for file-specific comments (new threads only).",
                },
                "lineStart": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Starting line number for file comments (new threads only).",
                },
                "lineEnd": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Ending line number for file comments (defaults to lineStart).",
                },
                "project": _OPTIONAL_PROJECT,
            },
            "additionalProperties": False,
        },
    },
}


@dataclass(frozen=True, slots=True)
class Runtime:
    """Per-server runtime dependencies shared across tool calls."""

    config: AppConfig
    audit: AuditLogger
    policy: Policy
    auth: AzureDevOpsAuth
    client: AzureDevOpsClient
    git: GitApi
    identity: IdentityResolver


@dataclass(frozen=True, slots=True)
class ToolResponse:
    """A single text payload; ``is_error`` maps to the MCP ``isError`` flag."""

    text: str
    is_error: bool = False


Handler = Callable[[Runtime, dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class ToolSpec:
    name: str
    description: str
    input_schema: Mapping[str, Any]
    handler: Handler


_RUNTIME: Runtime | None = None

_JSON_TYPES: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
}


def _check_value(field: str, value: Any, spec: Mapping[str, Any]) -> None:
    expected = spec.get("type")
    check = _JSON_TYPES.get(expected) if isinstance(expected, str) else None
    if check is not None and not check(value):
        article = "an" if expected[0] in "aeiou" else "a"
        raise invalid_parameters(f"Field '{field}' must be {article} {expected}")

    enum = spec.get("enum")
    if enum is not None and value not in enum:
        raise invalid_enum_value(field=field, value=value, allowed=enum)

    if expected == "string":
        min_len = spec.get("minLength")
        if isinstance(min_len, int) and len(value) < min_len:
            raise invalid_parameters(f"Field '{field}' must be at least {min_len} characters")

    if expected == "integer":
        minimum = spec.get("minimum")
        if isinstance(minimum, int) and value < minimum:
            raise invalid_parameters(f"Field '{field}' must be >= {minimum}")

    if expected == "array":
        min_items = spec.get("minItems")
        if isinstance(min_items, int) and len(value) < min_items:
            raise invalid_parameters(f"Field '{field}' must contain at least {min_items} item(s)")
        items = spec.get("items")
        if isinstance(items, dict):
            for i, item in enumerate(value):
                _check_value(f"{field}[{i}]", item, items)


def validate_tool_arguments(tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Validate tool arguments against the tool's declared input schema.

    Returns a new dict with schema defaults filled in. Explicit ``null`` values are treated as
    omitted. Enforces required fields, no extra properties, JSON types, ``enum``, ``minLength``,
    ``minimum``, ``minItems`` and array item schemas. It does NOT implement full JSON Schema.
    """
    if tool_name not in TOOL_METADATA:
        raise invalid_parameters("Unknown tool")

    schema = TOOL_METADATA[tool_name]["inputSchema"]
    props: dict[str, Any] = schema.get("properties", {})
    required: list[str] = schema.get("required", [])

    supplied = {k: v for k, v in arguments.items() if v is not None}

    for k in required:
        if k not in supplied:
            raise invalid_parameters(f"Missing required field: {k}")

    if schema.get("additionalProperties", True) is False:
        extras = sorted(k for k in supplied if k not in props)
        if extras:
            raise invalid_parameters(f"Unexpected fields are not allowed: {', '.join(extras)}")

    for k, v in supplied.items():
        if k in props:
            _check_value(k, v, props[k])

    normalized = {k: spec["default"] for k, spec in props.items() if "default" in spec}
    normalized.update(supplied)
    return normalized


def initialize_runtime_from_env(*, organization: str | None = None) -> Runtime:
    """Initialize and cache runtime from environment.

    Called at server startup (fail-fast), and can also be used lazily.
    """
    global _RUNTIME  # pylint: disable=global-statement
    if _RUNTIME is not None:
        return _RUNTIME

    config = load_config_from_env(organization=organization)
    audit = AuditLogger(
        sink_path=config.audit_log_path,
        max_bytes=config.audit_max_bytes,
        max_backups=config.audit_max_backups,
    )
    auth = AzureDevOpsAuth(config=config)
    client = AzureDevOpsClient(
        token_provider=auth.get_access_token,
        organization=config.organization,
        limits=config.limits,
    )
    timeout_s = config.limits.total_timeout_s

    _RUNTIME = Runtime(
        config=config,
        audit=audit,
        policy=Policy(read_only=config.policy.read_only),
        auth=auth,
        client=client,
        git=GitApi(client=client, total_timeout_s=timeout_s),
        identity=IdentityResolver(client=client, total_timeout_s=timeout_s),
    )
    return _RUNTIME


async def _tool_list_repos_by_project(runtime: Runtime, args: dict[str, Any]) -> list[dict[str, Any]]:
    repositories = await runtime.git.get_repositories(args["project"])

    name_filter = args.get("repoNameFilter")
    if name_filter:
        needle = name_filter.lower()
        repositories = [
            r for r in repositories if isinstance(r.get("name"), str) and needle in r["name"].lower()
        ]

    paged = page(repositories, order=sort_repositories, skip=args["skip"], top=args["top"])
    return [project_repository(r) for r in paged]


async def _list_pull_requests(
    runtime: Runtime,
    args: dict[str, Any],
    *,
    repository_id: str | None = None,
    project: str | None = None,
) -> list[dict[str, Any]]:
    # Reject a bad status before the identity lookup goes out.
    lookup_enum(PULL_REQUEST_STATUSES, field="status", value=args["status"])

    identities = await resolve_pull_request_identities(
        runtime.identity,
        created_by_user=args.get("created_by_user"),
        created_by_me=args["created_by_me"],
        i_am_reviewer=args["i_am_reviewer"],
    )
    criteria = build_pull_request_criteria(
        status=args["status"],
        repository_id=repository_id,
        creator_id=identities.creator_id,
        reviewer_id=identities.reviewer_id,
    )

    skip, top = args["skip"], args["top"]
    if repository_id is not None:
        pull_requests = await runtime.git.get_pull_requests(repository_id, criteria, skip=skip, top=top)
    else:
        pull_requests = await runtime.git.get_pull_requests_by_project(project or "", criteria, skip=skip, top=top)

    # The backend already applied $skip; only cap the window here.
    return [
        project_pull_request(pr, include_repository=repository_id is None)
        for pr in paginate(pull_requests, skip=0, top=top)
    ]


async def _tool_list_pull_requests_by_repo(runtime: Runtime, args: dict[str, Any]) -> list[dict[str, Any]]:
    return await _list_pull_requests(runtime, args, repository_id=args["repositoryId"])


async def _tool_list_pull_requests_by_project(runtime: Runtime, args: dict[str, Any]) -> list[dict[str, Any]]:
    return await _list_pull_requests(runtime, args, project=args["project"])


async def _list_branches(runtime: Runtime, args: dict[str, Any], *, mine: bool) -> list[str]:
    criteria = build_ref_criteria(filter_contains=args.get("filterContains"), include_my_branches=mine)
    refs = await runtime.git.get_refs(args["repositoryId"], criteria)
    return page(branch_short_names(refs), order=sort_branch_names, skip=0, top=args["top"])


async def _tool_list_branches_by_repo(runtime: Runtime, args: dict[str, Any]) -> list[str]:
    return await _list_branches(runtime, args, mine=False)


async def _tool_list_my_branches_by_repo(runtime: Runtime, args: dict[str, Any]) -> list[str]:
    return await _list_branches(runtime, args, mine=True)


async def _tool_list_pull_request_threads(runtime: Runtime, args: dict[str, Any]) -> list[dict[str, Any]]:
    threads = await runtime.git.get_threads(
        args["repositoryId"],
        args["pullRequestId"],
        project=args.get("project"),
        iteration=args.get("iteration"),
        base_iteration=args.get("baseIteration"),
    )
    paged = page(threads, order=sort_by_id, skip=args["skip"], top=args["top"])
    return project_threads(paged, full_response=args["fullResponse"])


async def _tool_list_pull_request_thread_comments(runtime: Runtime, args: dict[str, Any]) -> list[dict[str, Any]]:
    comments = await runtime.git.get_comments(
        args["repositoryId"],
        args["pullRequestId"],
        args["threadId"],
        project=args.get("project"),
    )
    paged = page(live_comments(comments), order=sort_by_id, skip=args["skip"], top=args["top"])
    return project_comments(paged, full_response=args["fullResponse"])


async def _tool_get_repo_by_name_or_id(runtime: Runtime, args: dict[str, Any]) -> dict[str, Any]:
    project = args["project"]
    name_or_id = args["repositoryNameOrId"]
    repositories = await runtime.git.get_repositories(project)
    for repo in repositories:
        if repo.get("name") == name_or_id or repo.get("id") == name_or_id:
            return repo
    raise entity_not_found(f"Repository {name_or_id} not found in project {project}")


async def _tool_get_branch_by_name(runtime: Runtime, args: dict[str, Any]) -> dict[str, Any]:
    repository_id = args["repositoryId"]
    branch_name = args["branchName"]
    refs = await runtime.git.get_refs(repository_id, build_ref_criteria(filter_contains=branch_name))
    for ref in refs:
        if ref.get("name") in (f"refs/heads/{branch_name}", branch_name):
            return ref
    raise entity_not_found(f"Branch {branch_name} not found in repository {repository_id}")


async def _tool_get_pull_request_by_id(runtime: Runtime, args: dict[str, Any]) -> dict[str, Any]:
    return await runtime.git.get_pull_request(
        args["repositoryId"],
        args["pullRequestId"],
        include_work_item_refs=args["includeWorkItemRefs"],
    )


async def _tool_search_commits(runtime: Runtime, args: dict[str, Any]) -> list[dict[str, Any]]:
    criteria = build_commit_criteria(
        from_commit=args.get("fromCommit"),
        to_commit=args.get("toCommit"),
        version=args.get("version"),
        version_type=args["versionType"],
        include_links=args["includeLinks"],
        include_work_items=args["includeWorkItems"],
        skip=args["skip"],
        top=args["top"],
    )
    commits = await runtime.git.get_commits(args["repository"], criteria, project=args["project"])
    return paginate(commits, skip=0, top=criteria.top)


async def _tool_list_pull_requests_by_commits(runtime: Runtime, args: dict[str, Any]) -> dict[str, Any]:
    query = build_pull_request_query(commits=args["commits"], query_type=args["queryType"])
    return await runtime.git.get_pull_request_query(query, args["repository"], project=args["project"])


async def _tool_create_pull_request_comment(runtime: Runtime, args: dict[str, Any]) -> dict[str, Any]:
    content: str = args["content"]
    enforce_max_bytes(
        data=content.encode("utf-8"),
        max_bytes=runtime.config.limits.comment_max_bytes,
        what="comment content",
    )
    repository_id = args["repositoryId"]
    pull_request_id = args["pullRequestId"]
    project = args.get("project")

    thread_id = args.get("threadId")
    if thread_id is not None:
        created = await runtime.git.create_comment(
            build_new_comment(content=content),
            repository_id,
            pull_request_id,
            thread_id,
            project=project,
        )
        return project_created_comment(created, thread_id=thread_id)

    thread = build_new_thread(
        content=content,
        status=args["status"],
        file_path=args.get("filePath"),
        line_start=args.get("lineStart"),
        line_end=args.get("lineEnd"),
    )
    created = await runtime.git.create_thread(thread, repository_id, pull_request_id, project=project)
    return project_created_thread(created)


_TOOL_FUNCS: dict[str, Handler] = {
    "list_repos_by_project": _tool_list_repos_by_project,
    "list_pull_requests_by_repo": _tool_list_pull_requests_by_repo,
    "list_pull_requests_by_project": _tool_list_pull_requests_by_project,
    "list_branches_by_repo": _tool_list_branches_by_repo,
    "list_my_branches_by_repo": _tool_list_my_branches_by_repo,
    "list_pull_request_threads": _tool_list_pull_request_threads,
    "list_pull_request_thread_comments": _tool_list_pull_request_thread_comments,
    "get_repo_by_name_or_id": _tool_get_repo_by_name_or_id,
    "get_branch_by_name": _tool_get_branch_by_name,
    "get_pull_request_by_id": _tool_get_pull_request_by_id,
    "search_commits": _tool_search_commits,
    "list_pull_requests_by_commits": _tool_list_pull_requests_by_commits,
    "create_pull_request_comment": _tool_create_pull_request_comment,
}

TOOL_REGISTRY: Mapping[str, ToolSpec] = MappingProxyType(
    {
        name: ToolSpec(
            name=name,
            description=meta["description"],
            input_schema=MappingProxyType(meta["inputSchema"]),
            handler=_TOOL_FUNCS[name],
        )
        for name, meta in TOOL_METADATA.items()
    }
)


def public_tool_name(operation: str) -> str:
    return f"{TOOL_NAME_PREFIX}{operation}"


def resolve_operation_name(name: str) -> str:
    """Accept both the published ``repo_`` name and the bare operation name."""
    if name.startswith(TOOL_NAME_PREFIX) and name[len(TOOL_NAME_PREFIX) :] in TOOL_REGISTRY:
        return name[len(TOOL_NAME_PREFIX) :]
    return name


def _target_from_args(arguments: dict[str, Any]) -> str:
    project = arguments.get("project")
    repository = arguments.get("repositoryId") or arguments.get("repository")
    parts = [p for p in (project, repository) if isinstance(p, str) and p]
    return "/".join(parts) if parts else "<unknown>"


def render_payload(payload: Any) -> str:
    return json.dumps(payload, indent=2, default=str)


def _error_response(err: SafeError | None, correlation_id: str) -> ToolResponse:
    result = safe_error_to_result(err) if err is not None else internal_error("Tool execution failed")
    result["correlation_id"] = correlation_id
    return ToolResponse(text=render_payload(result), is_error=True)


async def dispatch_tool(name: str, arguments: dict[str, Any]) -> ToolResponse:
    """Dispatch a tool call.

    Never raises: every failure becomes an error-flagged response.
    """
    correlation_id = new_correlation_id()
    arguments = arguments if isinstance(arguments, dict) else {}
    operation = resolve_operation_name(name)
    target = _target_from_args(arguments)

    runtime: Runtime | None = None
    start: float | None = None

    def audit(outcome: str, *, error_code: str | None = None, reason: str | None = None) -> None:
        if runtime is not None and start is not None:
            sink = runtime.audit
            duration: int | None = runtime.audit.measure_duration_ms(start)
        else:
            # Runtime could not be initialized (e.g. Config failures): still emit to stderr.
            sink = AuditLogger(sink_path=None)
            duration = None
        sink.write_event(
            build_event(
                correlation_id=correlation_id,
                operation=operation,
                target=target,
                outcome=outcome,
                error_code=error_code,
                reason=reason,
                duration_ms=duration,
            )
        )

    try:
        runtime = initialize_runtime_from_env()
        start = runtime.audit.measure_start()

        validate_no_secrets(arguments)
        spec = TOOL_REGISTRY.get(operation)
        if spec is None:
            raise invalid_parameters(
                f"Unknown tool: {name}",
                hint=f"Available tools: {', '.join(sorted(public_tool_name(n) for n in TOOL_REGISTRY))}",
            )

        args = validate_tool_arguments(operation, arguments)

        decision = runtime.policy.check_operation_allowed(operation)
        if not decision.allowed:
            raise SafeError(code="Forbidden", message="Operation is not allowed", hint=decision.reason)

        payload = await spec.handler(runtime, args)

        audit(OUTCOME_SUCCEEDED)
        return ToolResponse(text=render_payload(payload))

    except SafeError as err:
        outcome = OUTCOME_DENIED if err.code in PRE_FLIGHT_CODES else OUTCOME_FAILED
        logger.warning("Tool %s failed (%s): %s", operation, err.code, redact_text(err.message))
        audit(outcome, error_code=err.code, reason=err.message)
        return _error_response(err, correlation_id)
    except Exception:  # pylint: disable=broad-exception-caught
        logger.exception("Tool %s raised an unexpected error", operation)
        audit(OUTCOME_FAILED, error_code="Internal", reason="Internal error")
        return _error_response(None, correlation_id)
