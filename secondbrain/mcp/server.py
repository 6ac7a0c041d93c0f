"""
MCP server wiring and tool registration.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional

from fastmcp import FastMCP

import secondbrain.config as config
from secondbrain.container import Services
from secondbrain.errors import StaleEntryError, ValidationIssue
from secondbrain.services.entry_repository import serialize_entry

READ_ONLY_TOOL_ANNOTATIONS = {"readOnlyHint": True}
DESTRUCTIVE_TOOL_ANNOTATIONS = {"destructiveHint": True}

logger = config.logger


def _tool_error_payload(tool_name: str, exc: ValidationIssue) -> dict:
    return {
        "status": "error",
        "error_type": "validation_error",
        "tool": tool_name,
        "field": exc.field,
        "message": str(exc),
    }


def tool_error_handler(fn: Callable[..., dict]) -> Callable[..., dict]:
    """Turn validation and stale-write errors into tool payloads."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ValidationIssue as exc:
            logger.info(
                "tool_validation_error",
                extra={"tool": fn.__name__, "field": exc.field, "error_type": exc.error_type},
            )
            return _tool_error_payload(fn.__name__, exc)
        except StaleEntryError as exc:
            return {
                "status": "error",
                "error_type": "stale_entry",
                "tool": fn.__name__,
                "entry_id": exc.entry_id,
                "message": str(exc),
            }
    return wrapper


def _not_found(ref: Any) -> dict:
    return {"status": "not_found", "ref": str(ref)}


def build_tools(get_services: Callable[[], Services]) -> dict[str, tuple[Callable[..., dict], dict]]:
    """Tool callables keyed by name; each resolves services at call time."""
    registry: dict[str, tuple[Callable[..., dict], dict]] = {}

    def mcp_tool(**kwargs):
        def decorator(fn: Callable[..., dict]):
            registry[fn.__name__] = (tool_error_handler(fn), kwargs)
            return fn
        return decorator

    @mcp_tool()
    def entry_create(
        category: str,
        title: str,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        content: Optional[dict] = None,
        due_date: Optional[str] = None,
        legacy_id: Optional[str] = None,
    ) -> dict:
        entry = get_services().entries.create(
            category,
            title,
            status=status,
            priority=priority,
            content=content,
            due_date=due_date,
            legacy_id=legacy_id,
        )
        return {"status": "created", "entry": serialize_entry(entry)}

    @mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
    def entry_get(ref: str) -> dict:
        entry = get_services().entries.resolve(ref)
        if entry is None:
            return _not_found(ref)
        return {"status": "ok", "entry": serialize_entry(entry)}

    @mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
    def entry_list(
        category: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = config.DEFAULT_LIST_LIMIT,
        offset: int = 0,
        order_by: str = "created_at",
        order_dir: str = "desc",
    ) -> dict:
        repository = get_services().entries
        entries = repository.list(
            category=category,
            status=status,
            priority=priority,
            search=search,
            limit=limit,
            offset=offset,
            order_by=order_by,
            order_dir=order_dir,
        )
        total = repository.count(category=category, status=status, priority=priority, search=search)
        return {
            "status": "ok",
            "count": len(entries),
            "total": total,
            "entries": [serialize_entry(entry) for entry in entries],
        }

    @mcp_tool()
    def entry_update(
        entry_id: str,
        title: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        due_date: Optional[str] = None,
        content: Optional[dict] = None,
        expected_updated_at: Optional[str] = None,
    ) -> dict:
        supplied = {
            "title": title,
            "status": status,
            "priority": priority,
            "due_date": due_date,
            "content": content,
        }
        fields = {key: value for key, value in supplied.items() if value is not None}
        entry = get_services().entries.update(
            entry_id,
            fields,
            expected_updated_at=expected_updated_at,
        )
        if entry is None:
            return _not_found(entry_id)
        return {"status": "updated", "entry": serialize_entry(entry)}

    @mcp_tool(annotations=DESTRUCTIVE_TOOL_ANNOTATIONS)
    def entry_archive(entry_id: str) -> dict:
        entry = get_services().entries.archive(entry_id)
        if entry is None:
            return _not_found(entry_id)
        return {"status": "archived", "entry": serialize_entry(entry)}

    @mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
    def entry_search(
        query: str,
        category: Optional[str] = None,
        limit: int = config.DEFAULT_SEARCH_LIMIT,
    ) -> dict:
        hits = get_services().search.search(query, category=category, limit=limit)
        return {
            "status": "ok",
            "count": len(hits),
            "results": [hit.to_dict() for hit in hits],
        }

    @mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
    def entry_links(entry_id: str) -> dict:
        services = get_services()
        if services.entries.get(entry_id) is None:
            return _not_found(entry_id)
        linked = services.relations.get_linked(entry_id)
        return {
            "status": "ok",
            "count": len(linked),
            "links": [item.to_dict() for item in linked],
        }

    @mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
    def entry_suggestions(
        entry_id: str,
        limit: int = config.SUGGEST_DEFAULT_LIMIT,
        threshold: float = config.SUGGEST_DEFAULT_THRESHOLD,
    ) -> dict:
        services = get_services()
        if services.entries.get(entry_id) is None:
            return _not_found(entry_id)
        hits = services.relations.suggest_related(entry_id, limit=limit, threshold=threshold)
        return {
            "status": "ok",
            "count": len(hits),
            "suggestions": [hit.to_dict() for hit in hits],
        }

    @mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
    def entry_suggest_for_text(
        text: str,
        exclude_id: Optional[str] = None,
        limit: int = config.SUGGEST_DEFAULT_LIMIT,
        threshold: float = config.SUGGEST_DEFAULT_THRESHOLD,
    ) -> dict:
        hits = get_services().relations.suggest_for_text(
            text,
            exclude_id=exclude_id,
            limit=limit,
            threshold=threshold,
        )
        return {
            "status": "ok",
            "count": len(hits),
            "suggestions": [hit.to_dict() for hit in hits],
        }

    return registry


def build_mcp(get_services: Callable[[], Services], name: str = "SecondBrain") -> FastMCP:
    mcp = FastMCP(name)
    for fn, kwargs in build_tools(get_services).values():
        mcp.tool(**kwargs)(fn)
    return mcp


def build_mcp_app(mcp: FastMCP):
    return mcp.http_app(
        path="/",
        transport="streamable-http",
        stateless_http=True,
        json_response=True,
    )


class MCPRouteNormalizerASGI:
    """Pure ASGI middleware - no response buffering, SSE-safe."""
    def __init__(self, wrapped_app):
        self.wrapped_app = wrapped_app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope.get("path") == "/mcp":
            scope = dict(scope)
            scope["path"] = "/mcp/"
        await self.wrapped_app(scope, receive, send)
