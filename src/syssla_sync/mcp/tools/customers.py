"""MCP tool handlers for customers and their projects."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import mcp.types as types
from pydantic import ValidationError

from ...core.async_utils import run_sync
from ...customers import CUSTOMER_FIELDS
from ...models import Customer, Project
from ...validators import describe_validation_error
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..lifespan import AppContext


def _mutating(idempotent: bool = False) -> types.ToolAnnotations:
    return types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=idempotent,
        openWorldHint=False,
    )


def _reader() -> types.ToolAnnotations:
    return types.ToolAnnotations(
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )


_CUSTOMER_PROPERTIES: dict[str, Any] = {
    "name": {"type": "string", "description": "Customer name"},
    "invoice_ref": {"type": "string", "description": "Reference printed on invoices"},
    "rate": {"type": "number", "description": "Hourly rate"},
    "currency": {"type": "string", "description": "Currency code, e.g. SEK"},
    "vat": {"type": "number", "description": "VAT rate, e.g. 0.25"},
    "billing_address": {"type": "string"},
    "cost_place": {"type": "string"},
    "notes": {"type": "string"},
}

_CUSTOMER_ID = {"type": "string", "description": "Customer id"}


CUSTOMER_TOOLS: list[types.Tool] = [
    types.Tool(
        name="customer_list",
        description="List customers by name. Archived customers are hidden unless include_archived=true.",
        annotations=_reader(),
        inputSchema={
            "type": "object",
            "properties": {
                "include_archived": {"type": "boolean", "default": False},
            },
        },
    ),
    types.Tool(
        name="customer_create",
        description="Create a customer to track time against.",
        annotations=_mutating(),
        inputSchema={
            "type": "object",
            "properties": _CUSTOMER_PROPERTIES,
            "required": ["name"],
        },
    ),
    types.Tool(
        name="customer_update",
        description="Change customer fields. Only the given fields are changed.",
        annotations=_mutating(idempotent=True),
        inputSchema={
            "type": "object",
            "properties": {"customer_id": _CUSTOMER_ID, **_CUSTOMER_PROPERTIES},
            "required": ["customer_id"],
        },
    ),
    types.Tool(
        name="customer_archive",
        description=(
            "Archive a customer (hidden from customer_list, time entries are kept), "
            "or restore it with unarchive=true."
        ),
        annotations=_mutating(idempotent=True),
        inputSchema={
            "type": "object",
            "properties": {
                "customer_id": _CUSTOMER_ID,
                "unarchive": {"type": "boolean", "default": False},
            },
            "required": ["customer_id"],
        },
    ),
    types.Tool(
        name="project_create",
        description="Create a project under an existing customer.",
        annotations=_mutating(),
        inputSchema={
            "type": "object",
            "properties": {
                "customer_id": _CUSTOMER_ID,
                "name": {"type": "string", "description": "Project name"},
                "code": {"type": "string", "description": "Short project code"},
                "notes": {"type": "string"},
            },
            "required": ["customer_id", "name"],
        },
    ),
    types.Tool(
        name="project_list",
        description="List projects, optionally for one customer.",
        annotations=_reader(),
        inputSchema={
            "type": "object",
            "properties": {"customer_id": _CUSTOMER_ID},
        },
    ),
]


def _customer_line(customer: Customer) -> str:
    line = f"- {customer.name} ({customer.id})"
    if customer.rate is not None:
        line += f" {customer.rate:g} {customer.currency or ''}".rstrip() + "/h"
    if customer.archived:
        line += " [archived]"
    return line


def _project_line(project: Project) -> str:
    code = f" [{project.code}]" if project.code else ""
    return f"- {project.name}{code} ({project.id}) customer {project.customer_id}"


def _record_result(text: str, record: Customer | Project) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=record.model_dump(mode="json"),
    )


def _customer_fields(args: dict[str, Any]) -> dict[str, Any]:
    return {key: args[key] for key in CUSTOMER_FIELDS if args.get(key) is not None}


def _require(args: dict[str, Any], key: str) -> Any:
    value = args.get(key)
    if not value:
        raise ValueError(f"{key} is required")
    return value


async def _handle_customer_list(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    customers = await run_sync(
        ctx.customers.list, bool(args.get("include_archived", False))
    )
    if customers:
        text = f"{len(customers)} customer(s):\n\n" + "\n".join(
            _customer_line(c) for c in customers
        )
    else:
        text = "No customers."
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={"customers": [c.model_dump(mode="json") for c in customers]},
    )


async def _handle_customer_create(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    fields = _customer_fields(args)
    name = _require(fields, "name")
    del fields["name"]
    try:
        customer = await run_sync(ctx.customers.create, name, **fields)
    except ValidationError as e:
        raise ValueError(describe_validation_error(e)) from e
    return _record_result(
        f"Customer created: {customer.name} ({customer.id}).", customer
    )


async def _handle_customer_update(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    customer_id = _require(args, "customer_id")
    changes = _customer_fields(args)
    if not changes:
        raise ValueError(
            f"Provide at least one field to change: {', '.join(sorted(CUSTOMER_FIELDS))}"
        )
    try:
        customer = await run_sync(ctx.customers.update, customer_id, **changes)
    except ValidationError as e:
        raise ValueError(describe_validation_error(e)) from e
    return _record_result(
        f"Customer updated: {customer.name} ({customer.id}).", customer
    )


async def _handle_customer_archive(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    customer_id = _require(args, "customer_id")
    if args.get("unarchive", False):
        customer = await run_sync(ctx.customers.unarchive, customer_id)
        verb = "restored"
    else:
        customer = await run_sync(ctx.customers.archive, customer_id)
        verb = "archived"
    return _record_result(f"Customer {verb}: {customer.name} ({customer.id}).", customer)


async def _handle_project_create(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    customer_id = _require(args, "customer_id")
    name = _require(args, "name")
    try:
        project = await run_sync(
            ctx.customers.create_project,
            customer_id,
            name,
            code=args.get("code"),
            notes=args.get("notes"),
        )
    except ValidationError as e:
        raise ValueError(describe_validation_error(e)) from e
    return _record_result(
        f"Project created: {project.name} ({project.id}) for customer {customer_id}.",
        project,
    )


async def _handle_project_list(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    projects = await run_sync(ctx.customers.list_projects, args.get("customer_id"))
    if projects:
        text = f"{len(projects)} project(s):\n\n" + "\n".join(
            _project_line(p) for p in projects
        )
    else:
        text = "No projects."
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={"projects": [p.model_dump(mode="json") for p in projects]},
    )


CUSTOMER_SPECS: list[ToolSpec] = [
    ToolSpec(tool=CUSTOMER_TOOLS[0], mutating=False, handler=_handle_customer_list),
    ToolSpec(tool=CUSTOMER_TOOLS[1], mutating=True, handler=_handle_customer_create),
    ToolSpec(tool=CUSTOMER_TOOLS[2], mutating=True, handler=_handle_customer_update),
    ToolSpec(tool=CUSTOMER_TOOLS[3], mutating=True, handler=_handle_customer_archive),
    ToolSpec(tool=CUSTOMER_TOOLS[4], mutating=True, handler=_handle_project_create),
    ToolSpec(tool=CUSTOMER_TOOLS[5], mutating=False, handler=_handle_project_list),
]
