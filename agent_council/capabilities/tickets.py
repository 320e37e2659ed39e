"""Ticket tracker provider backed by synthetic, seeded records."""

import logging
import random
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from agent_council.capabilities.base import (
    Capability,
    CapabilityProvider,
    NotFound,
    ParameterSpec,
    PromptArgument,
    PromptTemplate,
    Resource,
)

logger = logging.getLogger(__name__)

STATUSES = ("open", "in_progress", "closed")
PRIORITIES = ("P0", "P1", "P2", "P3")

_TITLES = (
    "Login fails on Safari browser",
    "Password reset email not sent",
    "API rate limiting not working correctly",
    "Dashboard loading very slowly",
    "User profile picture not updating",
    "Search results returning duplicates",
    "Mobile app crashes on startup",
    "Payment processing timeout errors",
    "Two-factor authentication broken",
    "Export to CSV missing columns",
    "Notification emails going to spam",
    "Session expires too quickly",
    "Dark mode colors incorrect",
    "File upload size limit too small",
    "Websocket connection drops frequently",
    "Database connection pool exhausted",
    "Memory leak in background worker",
    "Caching not invalidating properly",
    "Pagination broken on large datasets",
    "Timezone display incorrect",
    "SSL certificate renewal needed",
    "CORS errors blocking API calls",
    "User permissions not applied correctly",
    "Audit log missing entries",
    "Backup job failing silently",
)

_DESCRIPTIONS = (
    "Users report that this happens intermittently",
    "Started after the last deployment",
    "Several customers have complained about this",
    "Reproducible every time with the steps in the comments",
    "Only a subset of accounts is affected",
    "Appeared after the security update",
    "Significant business impact",
    "Root cause still under investigation",
    "A temporary workaround is available",
    "Blocking customer workflows",
)

_ASSIGNEES = ("alice@example.com", "bob@example.com", "charlie@example.com", "diana@example.com", None, None)

_LABEL_SETS = (
    ("bug", "auth"),
    ("bug", "performance"),
    ("bug", "ui"),
    ("bug", "api"),
    ("bug", "mobile"),
    ("bug", "security"),
    ("feature", "enhancement"),
    ("bug", "database"),
    ("maintenance",),
)

_REFERENCE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


@dataclass
class Ticket:
    id: str
    title: str
    description: str
    status: str
    priority: str
    assignee: str | None
    created: str
    updated: str
    labels: list[str] = field(default_factory=list)
    comments: list[dict[str, str]] = field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "assignee": self.assignee,
        }


def generate_tickets(count: int = 50, seed: int = 7) -> list[Ticket]:
    """Build a deterministic set of synthetic tickets."""
    rng = random.Random(seed)
    named_assignees = [a for a in _ASSIGNEES if a]
    tickets: list[Ticket] = []
    for i in range(count):
        created = _REFERENCE_TIME - timedelta(days=rng.uniform(0, 30))
        updated = created + timedelta(days=rng.uniform(0, 7))
        comments = []
        if rng.random() > 0.5:
            comments.append({
                "author": rng.choice(named_assignees),
                "text": "Looking into this now.",
                "timestamp": updated.isoformat(),
            })
        tickets.append(Ticket(
            id=f"TKT-{i + 1:03d}",
            title=_TITLES[i % len(_TITLES)],
            description=_DESCRIPTIONS[i % len(_DESCRIPTIONS)],
            status=rng.choice(STATUSES),
            priority=rng.choice(PRIORITIES),
            assignee=rng.choice(_ASSIGNEES),
            created=created.isoformat(),
            updated=updated.isoformat(),
            labels=list(rng.choice(_LABEL_SETS)),
            comments=comments,
        ))
    return tickets


_STATUS_FILTER = ParameterSpec("status", "string", "Filter by status", enum=(*STATUSES, "all"))
_PRIORITY_FILTER = ParameterSpec("priority", "string", "Filter by priority", enum=(*PRIORITIES, "all"))


class TicketsProvider(CapabilityProvider):
    """Simulated Jira/Linear style issue tracker."""

    provider_id = "tickets"
    name = "nexus://tickets"
    description = "Simulated ticket system for bug tracking and project management"

    capabilities = (
        Capability(
            "searchTickets",
            "Search tickets by query, status, or priority. Returns matching tickets.",
            (
                ParameterSpec("query", "string", "Search query to match against title and description", required=True),
                _STATUS_FILTER,
                _PRIORITY_FILTER,
                ParameterSpec("limit", "number", "Maximum results to return (default: 10)"),
            ),
        ),
        Capability(
            "getTicket",
            "Get detailed information about a specific ticket by ID.",
            (ParameterSpec("ticketId", "string", "Ticket ID (e.g., TKT-001)", required=True),),
        ),
        Capability(
            "listTickets",
            "List all tickets with optional filters.",
            (
                _STATUS_FILTER,
                _PRIORITY_FILTER,
                ParameterSpec("limit", "number", "Maximum results (default: 20)"),
            ),
        ),
        Capability(
            "createTicket",
            "Create a new ticket in the system.",
            (
                ParameterSpec("title", "string", "Ticket title", required=True),
                ParameterSpec("description", "string", "Detailed description"),
                ParameterSpec("priority", "string", "Priority level", enum=PRIORITIES),
            ),
        ),
        Capability(
            "updateTicket",
            "Update an existing ticket's status or assignee.",
            (
                ParameterSpec("ticketId", "string", "Ticket ID", required=True),
                ParameterSpec("status", "string", "New status", enum=STATUSES),
                ParameterSpec("assignee", "string", "New assignee email"),
            ),
        ),
    )

    resources = (
        Resource("tickets://all", "All Tickets", "Complete list of all tickets"),
        Resource("tickets://open", "Open Tickets", "Currently open tickets"),
        Resource("tickets://critical", "Critical Tickets", "P0 and P1 priority tickets"),
    )

    prompts = (
        PromptTemplate(
            "summarize_ticket",
            "Generate a summary for a ticket",
            (PromptArgument("ticketId", "The ticket to summarize", required=True),),
        ),
        PromptTemplate(
            "triage_report",
            "Generate a triage report for open tickets",
            (PromptArgument("priority", "Filter by priority"),),
        ),
    )

    def __init__(self, tickets: list[Ticket] | None = None) -> None:
        super().__init__()
        records = tickets if tickets is not None else generate_tickets()
        self._tickets: dict[str, Ticket] = {t.id: t for t in records}
        self._next_number = len(self._tickets) + 1

    def _handlers(self):
        return {
            "searchTickets": self._search,
            "getTicket": self._get,
            "listTickets": self._list,
            "createTicket": self._create,
            "updateTicket": self._update,
        }

    def _find(self, ticket_id: str) -> Ticket:
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            raise NotFound(f"Ticket {ticket_id}")
        return ticket

    @staticmethod
    def _filtered(tickets: list[Ticket], status: str | None, priority: str | None) -> list[Ticket]:
        if status and status != "all":
            tickets = [t for t in tickets if t.status == status]
        if priority and priority != "all":
            tickets = [t for t in tickets if t.priority == priority]
        return tickets

    def _search(self, args: dict[str, Any]) -> list[dict[str, Any]]:
        query = args["query"].lower()
        matches = [
            t for t in self._tickets.values()
            if query in t.title.lower() or query in t.description.lower()
        ]
        matches = self._filtered(matches, args.get("status"), args.get("priority"))
        limit = int(args.get("limit") or 10)
        return [t.summary() for t in matches[:limit]]

    def _get(self, args: dict[str, Any]) -> dict[str, Any]:
        return asdict(self._find(args["ticketId"]))

    def _list(self, args: dict[str, Any]) -> list[dict[str, Any]]:
        tickets = self._filtered(list(self._tickets.values()), args.get("status"), args.get("priority"))
        limit = int(args.get("limit") or 20)
        return [
            {"id": t.id, "title": t.title, "status": t.status, "priority": t.priority}
            for t in tickets[:limit]
        ]

    def _create(self, args: dict[str, Any]) -> dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        ticket = Ticket(
            id=f"TKT-{self._next_number:03d}",
            title=args["title"],
            description=args.get("description", ""),
            status="open",
            priority=args.get("priority", "P2"),
            assignee=None,
            created=now,
            updated=now,
        )
        self._next_number += 1
        self._tickets[ticket.id] = ticket
        logger.info("Created ticket %s", ticket.id)
        return {"success": True, "ticket": asdict(ticket)}

    def _update(self, args: dict[str, Any]) -> dict[str, Any]:
        ticket = self._find(args["ticketId"])
        if args.get("status"):
            ticket.status = args["status"]
        if args.get("assignee"):
            ticket.assignee = args["assignee"]
        ticket.updated = datetime.now(timezone.utc).isoformat()
        logger.info("Updated ticket %s", ticket.id)
        return {"success": True, "ticket": asdict(ticket)}

    def _read_resource(self, uri: str) -> list[dict[str, Any]]:
        tickets = list(self._tickets.values())
        if uri == "tickets://open":
            tickets = [t for t in tickets if t.status == "open"]
        elif uri == "tickets://critical":
            tickets = [t for t in tickets if t.priority in ("P0", "P1")]
        return [asdict(t) for t in tickets]

    def _render_prompt(self, name: str, args: dict[str, Any]) -> str:
        if name == "summarize_ticket":
            ticket = self._find(str(args["ticketId"]))
            return (
                "Please summarize the following ticket:\n\n"
                f"ID: {ticket.id}\nTitle: {ticket.title}\nDescription: {ticket.description}\n"
                f"Status: {ticket.status}\nPriority: {ticket.priority}"
            )
        open_tickets = [t for t in self._tickets.values() if t.status == "open"]
        if args.get("priority"):
            open_tickets = [t for t in open_tickets if t.priority == args["priority"]]
        listing = "\n".join(f"- {t.id}: {t.title} ({t.priority})" for t in open_tickets)
        return f"Generate a triage report for the following {len(open_tickets)} open tickets:\n\n{listing}"
