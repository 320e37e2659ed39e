"""Documentation wiki provider backed by synthetic pages."""

import logging
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

SPACES = ("engineering", "product", "runbooks", "general")
_AUTHORS = ("alice@example.com", "bob@example.com", "charlie@example.com", "diana@example.com")
_REFERENCE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)

# (title, space, tags, content)
_SEED_PAGES = (
    (
        "Authentication System Overview", "engineering", ("auth", "security", "jwt"),
        "# Authentication System\n\nSessions are backed by signed JWT access tokens.\n\n"
        "## Components\n- Identity provider verifies users\n- Token service issues and validates tokens\n"
        "- Session manager tracks active sessions\n\n"
        "## Security\n- Access tokens expire after 24 hours\n- Tokens are signed with RS256",
    ),
    (
        "API Rate Limiting", "engineering", ("api", "rate-limiting"),
        "# API Rate Limiting\n\nLimits are configured per endpoint and per user tier.\n\n"
        "| Tier | Requests/min |\n|---|---|\n| Free | 60 |\n| Pro | 600 |\n| Enterprise | 6000 |\n\n"
        "Exceeding the limit returns HTTP 429 with a Retry-After header.",
    ),
    (
        "Database Schema", "engineering", ("database", "schema"),
        "# Database Schema\n\nPostgreSQL 15. Core tables: users, sessions, tickets, audit_log.\n\n"
        "Migrations live in `db/migrations` and run on deploy.",
    ),
    (
        "Deployment Guide", "engineering", ("deployment", "ci"),
        "# Deployment Guide\n\n1. Merge to main\n2. CI builds and tags the image\n"
        "3. Staging deploy runs automatically\n4. Production deploy requires approval",
    ),
    (
        "Incident Response Runbook", "runbooks", ("incident", "on-call"),
        "# Incident Response\n\n1. Acknowledge the page\n2. Open an incident channel\n"
        "3. Assign an incident commander\n4. Post status updates every 30 minutes\n5. Write a postmortem",
    ),
    (
        "Database Outage Runbook", "runbooks", ("database", "incident"),
        "# Database Outage\n\n- Check connection pool saturation\n- Verify security group rules\n"
        "- Fail over to the replica if the primary is unreachable",
    ),
    (
        "Product Roadmap Q1 2025", "product", ("roadmap",),
        "# Q1 2025 Roadmap\n\n- SSO for enterprise customers\n- Mobile offline mode\n- Usage-based billing",
    ),
    (
        "Onboarding Checklist", "general", ("onboarding",),
        "# Onboarding\n\n- [ ] Laptop setup\n- [ ] Repository access\n- [ ] Complete security training",
    ),
    (
        "API Versioning Strategy", "engineering", ("api", "versioning"),
        "# API Versioning\n\nVersions are part of the URL path (`/v1`, `/v2`). "
        "Deprecated versions are supported for 12 months.",
    ),
    (
        "Security Best Practices", "engineering", ("security", "best-practices", "standards"),
        "# Security Best Practices\n\n- Never log secrets\n- Validate all input at the boundary\n"
        "- Rotate credentials quarterly\n\nReport issues to security@example.com",
    ),
)


@dataclass
class WikiPage:
    id: str
    title: str
    space: str
    content: str
    author: str
    created: str
    last_modified: str
    tags: list[str] = field(default_factory=list)
    linked_pages: list[str] = field(default_factory=list)


def generate_pages(filler: int = 20) -> list[WikiPage]:
    """Hand-written pages followed by placeholder documents."""
    pages: list[WikiPage] = []
    for i, (title, space, tags, content) in enumerate(_SEED_PAGES, start=1):
        pages.append(WikiPage(
            id=f"DOC-{i:03d}",
            title=title,
            space=space,
            content=content,
            author=_AUTHORS[i % len(_AUTHORS)],
            created=(_REFERENCE_TIME - timedelta(days=300 - i * 10)).isoformat(),
            last_modified=(_REFERENCE_TIME - timedelta(days=30 - i)).isoformat(),
            tags=list(tags),
        ))
    start = len(pages) + 1
    for i in range(start, start + filler):
        pages.append(WikiPage(
            id=f"DOC-{i:03d}",
            title=f"Technical Document {i}",
            space=SPACES[i % len(SPACES)],
            content=f"# Document {i}\n\nPlaceholder document.\n\n## Section 1\nContent here.",
            author=_AUTHORS[i % len(_AUTHORS)],
            created=(_REFERENCE_TIME - timedelta(days=30 - i)).isoformat(),
            last_modified=(_REFERENCE_TIME - timedelta(days=15 - i % 15)).isoformat(),
            tags=["documentation"],
        ))
    return pages


_SPACE_FILTER = ParameterSpec("space", "string", "Filter by space", enum=(*SPACES, "all"))


class WikiProvider(CapabilityProvider):
    """Simulated Confluence/Notion style documentation system."""

    provider_id = "wiki"
    name = "nexus://wiki"
    description = "Simulated documentation system"

    capabilities = (
        Capability(
            "searchPages",
            "Search wiki pages by keyword in title or content.",
            (
                ParameterSpec("query", "string", "Search query", required=True),
                _SPACE_FILTER,
                ParameterSpec("limit", "number", "Maximum results (default: 10)"),
            ),
        ),
        Capability(
            "getPage",
            "Get the full content of a wiki page by ID.",
            (ParameterSpec("pageId", "string", "Page ID (e.g., DOC-001)", required=True),),
        ),
        Capability(
            "listPages",
            "List wiki pages with optional space filter.",
            (_SPACE_FILTER, ParameterSpec("limit", "number", "Maximum results (default: 20)")),
        ),
        Capability(
            "createPage",
            "Create a new wiki page.",
            (
                ParameterSpec("title", "string", "Page title", required=True),
                ParameterSpec("content", "string", "Page content in markdown", required=True),
                ParameterSpec("space", "string", "Space to create in", enum=SPACES),
            ),
        ),
    )

    resources = (
        Resource("wiki://all", "All Pages", "Complete list of wiki pages"),
        Resource("wiki://engineering", "Engineering Docs", "Technical documentation"),
        Resource("wiki://runbooks", "Runbooks", "Incident response runbooks"),
        Resource("wiki://product", "Product Docs", "Product documentation"),
    )

    prompts = (
        PromptTemplate(
            "summarize_page",
            "Generate a summary of a wiki page",
            (PromptArgument("pageId", "The page to summarize", required=True),),
        ),
        PromptTemplate(
            "find_related",
            "Find pages related to a topic",
            (PromptArgument("topic", "Topic to search for", required=True),),
        ),
    )

    def __init__(self, pages: list[WikiPage] | None = None) -> None:
        super().__init__()
        records = pages if pages is not None else generate_pages()
        self._pages: dict[str, WikiPage] = {p.id: p for p in records}
        self._next_number = len(self._pages) + 1

    def _handlers(self):
        return {
            "searchPages": self._search,
            "getPage": self._get,
            "listPages": self._list,
            "createPage": self._create,
        }

    def _matching(self, query: str) -> list[WikiPage]:
        query = query.lower()
        return [p for p in self._pages.values() if query in p.title.lower() or query in p.content.lower()]

    def _search(self, args: dict[str, Any]) -> list[dict[str, Any]]:
        pages = self._matching(args["query"])
        space = args.get("space")
        if space and space != "all":
            pages = [p for p in pages if p.space == space]
        limit = int(args.get("limit") or 10)
        return [
            {"id": p.id, "title": p.title, "space": p.space, "author": p.author, "last_modified": p.last_modified}
            for p in pages[:limit]
        ]

    def _get(self, args: dict[str, Any]) -> dict[str, Any]:
        page = self._pages.get(args["pageId"])
        if page is None:
            raise NotFound(f"Page {args['pageId']}")
        return asdict(page)

    def _list(self, args: dict[str, Any]) -> list[dict[str, Any]]:
        pages = list(self._pages.values())
        space = args.get("space")
        if space and space != "all":
            pages = [p for p in pages if p.space == space]
        limit = int(args.get("limit") or 20)
        return [{"id": p.id, "title": p.title, "space": p.space} for p in pages[:limit]]

    def _create(self, args: dict[str, Any]) -> dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        page = WikiPage(
            id=f"DOC-{self._next_number:03d}",
            title=args["title"],
            space=args.get("space", "general"),
            content=args["content"],
            author="user@example.com",
            created=now,
            last_modified=now,
        )
        self._next_number += 1
        self._pages[page.id] = page
        logger.info("Created wiki page %s in %s", page.id, page.space)
        return {"success": True, "page": asdict(page)}

    def _read_resource(self, uri: str) -> list[dict[str, Any]]:
        space = uri.removeprefix("wiki://")
        pages = self._pages.values()
        if space != "all":
            pages = [p for p in pages if p.space == space]
        return [asdict(p) for p in pages]

    def _render_prompt(self, name: str, args: dict[str, Any]) -> str:
        if name == "summarize_page":
            page = self._pages.get(str(args["pageId"]))
            if page is None:
                raise NotFound(f"Page {args['pageId']}")
            return (
                "Please summarize the following wiki page:\n\n"
                f"Title: {page.title}\nSpace: {page.space}\n\nContent:\n{page.content}"
            )
        topic = str(args["topic"])
        related = self._matching(topic)[:5]
        listing = "\n".join(f"- {p.id}: {p.title}" for p in related)
        return f'Find pages related to "{topic}":\n\n{listing}'
