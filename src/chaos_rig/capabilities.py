"""Catalogue of tools the rig exposes to protocol clients.

Each tool has a pydantic argument model, published as its JSON Schema, and
an async handler. ``echo`` and ``add`` come in two versions so operators can
swap a tool's contract while clients stay connected.
"""

from __future__ import annotations

import json
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .contacts import ContactStore
from .models import ServerConfig, ToolVersion


@dataclass(frozen=True)
class CapabilityContext:
    contacts: ContactStore


ToolResult = dict[str, Any]
ToolHandler = Callable[[Any, CapabilityContext], Awaitable[ToolResult]]


@dataclass(frozen=True)
class CapabilityDefinition:
    name: str
    title: str
    description: str
    arguments: type[BaseModel]
    handler: ToolHandler

    def input_schema(self) -> dict[str, Any]:
        schema = self.arguments.model_json_schema()
        schema.pop("title", None)
        return schema

    def param_names(self) -> list[str]:
        return list(self.arguments.model_fields)

    def describe(self) -> dict[str, Any]:
        """Tool entry as returned by tools/list."""
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": self.input_schema(),
        }


def text_result(text: str, is_error: bool = False) -> ToolResult:
    result: ToolResult = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2)


class _Arguments(BaseModel):
    model_config = ConfigDict(extra="ignore")


class NoArguments(_Arguments):
    pass


class EchoArgs(_Arguments):
    message: str = Field(description="The message to echo back.")


class EchoFormattedArgs(EchoArgs):
    format: Literal["plain", "json", "uppercase"] = Field(
        description="Output format: 'plain', 'json', or 'uppercase'."
    )


class AddArgs(_Arguments):
    a: float = Field(description="First number.")
    b: float = Field(description="Second number.")


class SumArgs(_Arguments):
    numbers: list[float] = Field(description="Numbers to sum.")


class RandomNumberArgs(_Arguments):
    min: int = Field(description="The lower bound of the random range (inclusive).")
    max: int = Field(description="The upper bound of the random range (inclusive).")


class ReverseArgs(_Arguments):
    text: str = Field(description="The string to reverse.")


class SearchContactsArgs(_Arguments):
    query: str = Field(description="Search term to match against name, email, company, and notes.")


class CreateContactArgs(_Arguments):
    name: str = Field(description="Full name, e.g. 'Jane Doe'.")
    email: str = Field(description="Email address, e.g. 'jane@example.com'.")
    company: str = Field(default="", description="Company name. Optional.")
    notes: str = Field(default="", description="Free-text notes. Optional.")


class UpdateContactArgs(_Arguments):
    id: int = Field(description="The ID of the contact to update.")
    field: Literal["name", "email", "company", "notes"] = Field(description="Which field to update.")
    value: str = Field(description="The new value for the field.")


class DeleteContactArgs(_Arguments):
    id: int = Field(description="The ID of the contact to delete.")


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


async def _echo(args: EchoArgs, ctx: CapabilityContext) -> ToolResult:
    return text_result(args.message)


async def _echo_formatted(args: EchoFormattedArgs, ctx: CapabilityContext) -> ToolResult:
    if args.format == "json":
        return text_result(json.dumps({"echo": args.message}))
    if args.format == "uppercase":
        return text_result(args.message.upper())
    return text_result(args.message)


async def _add(args: AddArgs, ctx: CapabilityContext) -> ToolResult:
    return text_result(_format_number(args.a + args.b))


async def _sum(args: SumArgs, ctx: CapabilityContext) -> ToolResult:
    return text_result(_format_number(sum(args.numbers)))


async def _get_time(args: NoArguments, ctx: CapabilityContext) -> ToolResult:
    now = datetime.now(UTC)
    return text_result(now.isoformat(timespec="milliseconds").replace("+00:00", "Z"))


async def _random_number(args: RandomNumberArgs, ctx: CapabilityContext) -> ToolResult:
    return text_result(str(random.randint(args.min, args.max)))


async def _reverse(args: ReverseArgs, ctx: CapabilityContext) -> ToolResult:
    return text_result(args.text[::-1])


async def _list_contacts(args: NoArguments, ctx: CapabilityContext) -> ToolResult:
    return text_result(_dump([c.model_dump() for c in ctx.contacts.list_all()]))


async def _search_contacts(args: SearchContactsArgs, ctx: CapabilityContext) -> ToolResult:
    return text_result(_dump([c.model_dump() for c in ctx.contacts.search(args.query)]))


async def _create_contact(args: CreateContactArgs, ctx: CapabilityContext) -> ToolResult:
    contact = ctx.contacts.create(args.name, args.email, args.company, args.notes)
    return text_result(_dump(contact.model_dump()))


async def _update_contact(args: UpdateContactArgs, ctx: CapabilityContext) -> ToolResult:
    updated = ctx.contacts.update_field(args.id, args.field, args.value)
    if updated is None:
        return text_result(f"Error: no contact with id {args.id}")
    return text_result(_dump(updated.model_dump()))


async def _delete_contact(args: DeleteContactArgs, ctx: CapabilityContext) -> ToolResult:
    if not ctx.contacts.delete(args.id):
        return text_result(f"Error: no contact with id {args.id}")
    return text_result(f"Deleted contact {args.id}")


ECHO_V1 = CapabilityDefinition(
    name="echo",
    title="Echo Message",
    description="Echoes back the provided message verbatim as plain text.",
    arguments=EchoArgs,
    handler=_echo,
)

ECHO_V2 = CapabilityDefinition(
    name="echo",
    title="Echo Message (Formatted)",
    description=(
        "Echoes back the provided message in the chosen format: 'plain' returns it unchanged, "
        "'json' wraps it as {\"echo\": \"...\"}, 'uppercase' converts to uppercase."
    ),
    arguments=EchoFormattedArgs,
    handler=_echo_formatted,
)

ADD_V1 = CapabilityDefinition(
    name="add",
    title="Add Two Numbers",
    description="Returns the sum of two numbers.",
    arguments=AddArgs,
    handler=_add,
)

ADD_V2 = CapabilityDefinition(
    name="add",
    title="Sum Number Array",
    description="Returns the sum of an array of numbers. An empty array returns 0.",
    arguments=SumArgs,
    handler=_sum,
)

VERSIONED_CAPABILITIES: dict[str, dict[str, CapabilityDefinition]] = {
    "echo": {"v1": ECHO_V1, "v2": ECHO_V2},
    "add": {"v1": ADD_V1, "v2": ADD_V2},
}

STATIC_CAPABILITIES: dict[str, CapabilityDefinition] = {
    definition.name: definition
    for definition in (
        CapabilityDefinition(
            name="get-time",
            title="Get Current Time",
            description=(
                "Returns the current server time as an ISO 8601 string "
                "(e.g. '2025-01-30T14:30:00.000Z')."
            ),
            arguments=NoArguments,
            handler=_get_time,
        ),
        CapabilityDefinition(
            name="random-number",
            title="Generate Random Number",
            description=(
                "Generates a pseudo-random integer within the inclusive range [min, max]. "
                "If min equals max, the result is always that value."
            ),
            arguments=RandomNumberArgs,
            handler=_random_number,
        ),
        CapabilityDefinition(
            name="reverse",
            title="Reverse String",
            description=(
                "Reverses the characters in the provided string, operating on Unicode code "
                "points. Useful for confirming that the tool actually executed."
            ),
            arguments=ReverseArgs,
            handler=_reverse,
        ),
        CapabilityDefinition(
            name="list-contacts",
            title="List All Contacts",
            description=(
                "Returns all contacts from the database as a JSON array, ordered by ID. Each "
                "contact has id, name, email, company, notes, and created_at fields."
            ),
            arguments=NoArguments,
            handler=_list_contacts,
        ),
        CapabilityDefinition(
            name="search-contacts",
            title="Search Contacts",
            description=(
                "Searches contacts by a query string. Case-insensitive substring match against "
                "name, email, company, and notes fields."
            ),
            arguments=SearchContactsArgs,
            handler=_search_contacts,
        ),
        CapabilityDefinition(
            name="create-contact",
            title="Create Contact",
            description=(
                "Creates a new contact and returns the created record with its auto-generated "
                "ID and timestamp. Requires name and email. Company and notes are optional."
            ),
            arguments=CreateContactArgs,
            handler=_create_contact,
        ),
        CapabilityDefinition(
            name="update-contact",
            title="Update Contact",
            description=(
                "Updates a single field on a contact and returns the full updated contact. "
                "To update multiple fields, call this tool once per field."
            ),
            arguments=UpdateContactArgs,
            handler=_update_contact,
        ),
        CapabilityDefinition(
            name="delete-contact",
            title="Delete Contact",
            description=(
                "Permanently deletes a contact by ID. Returns a confirmation message or an "
                "error if the ID doesn't exist."
            ),
            arguments=DeleteContactArgs,
            handler=_delete_contact,
        ),
    )
}


def get_definition(name: str, version: ToolVersion | str | None = None) -> CapabilityDefinition | None:
    if name in VERSIONED_CAPABILITIES:
        return VERSIONED_CAPABILITIES[name].get(version or "v1")
    return STATIC_CAPABILITIES.get(name)


def all_names() -> list[str]:
    return [*VERSIONED_CAPABILITIES, *STATIC_CAPABILITIES]


def has_versions(name: str) -> bool:
    return name in VERSIONED_CAPABILITIES


def configured_definition(config: ServerConfig, name: str) -> CapabilityDefinition | None:
    """Definition of ``name`` at its currently configured version."""
    return get_definition(name, config.tool_versions.get(name))


def active_definitions(config: ServerConfig) -> list[CapabilityDefinition]:
    definitions: list[CapabilityDefinition] = []
    for name in all_names():
        if not config.enabled_tools.get(name):
            continue
        definition = configured_definition(config, name)
        if definition is not None:
            definitions.append(definition)
    return definitions
