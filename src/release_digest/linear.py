"""Linear client for the team recap: completed issues, grouped by team and project.

Linear exposes one GraphQL endpoint with cursor pagination. Issues are
requested most recently updated first, so paging stops at the first page
that reaches back past the window: an issue completed inside the window
was updated inside it too.

Linear API docs: https://developers.linear.app/docs/graphql/working-with-the-graphql-api
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from release_digest.errors import UpstreamError
from release_digest.logging_config import get_logger
from release_digest.schemas import parse_timestamp
from release_digest.sources.http import MAX_PAGES, http_client, post_json

logger = get_logger(__name__)

LINEAR_API = "https://api.linear.app/graphql"
PAGE_SIZE = 50
DEFAULT_DAYS = 7
NO_PROJECT = "No Project"

ISSUES_QUERY = """
query DoneIssues($first: Int!, $after: String) {
  issues(first: $first, after: $after, orderBy: updatedAt) {
    nodes {
      id
      identifier
      title
      url
      description
      completedAt
      updatedAt
      team { name key }
      project { name }
      state { name type }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class LinearTeam(BaseModel):
    name: str
    key: str = ""


class LinearProject(BaseModel):
    name: str


class LinearState(BaseModel):
    name: str = ""
    type: str = ""


class LinearIssue(BaseModel):
    """One issue node as returned by the issues query."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    identifier: str
    title: str
    url: str
    description: str | None = None
    completed_at: str | None = Field(None, alias="completedAt")
    updated_at: str | None = Field(None, alias="updatedAt")
    team: LinearTeam
    project: LinearProject | None = None
    state: LinearState = Field(default_factory=LinearState)

    @property
    def project_name(self) -> str:
        return self.project.name if self.project else NO_PROJECT


TeamGroups = dict[str, dict[str, list[LinearIssue]]]

# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


def _reaches_before(nodes: list[dict], since: datetime) -> bool:
    for node in nodes:
        updated = parse_timestamp(node.get("updatedAt"))
        if updated is not None and updated < since:
            return True
    return False


async def fetch_done_issues(
    api_key: str | None,
    *,
    days: int = DEFAULT_DAYS,
    now: datetime | None = None,
) -> list[LinearIssue]:
    """Issues moved to a completed state within the last `days` days.

    Returns [] without an API key. A rejected query or a failed page ends
    paging; the issues collected up to then are kept.
    """
    if not api_key:
        logger.error("linear_not_configured", field="LINEAR_API_KEY")
        return []

    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=days)
    headers = {"Authorization": api_key}

    nodes: list[dict] = []
    cursor: str | None = None
    async with http_client(headers=headers) as client:
        for _ in range(MAX_PAGES):
            try:
                data = await post_json(
                    client,
                    LINEAR_API,
                    payload={
                        "query": ISSUES_QUERY,
                        "variables": {"first": PAGE_SIZE, "after": cursor},
                    },
                )
            except UpstreamError as exc:
                logger.warning("linear_fetch_failed", error=str(exc), kept=len(nodes))
                break
            if not isinstance(data, dict) or data.get("errors"):
                errors = data.get("errors") if isinstance(data, dict) else data
                logger.warning("linear_query_rejected", errors=errors, kept=len(nodes))
                break

            page = (data.get("data") or {}).get("issues") or {}
            page_nodes = page.get("nodes") or []
            nodes.extend(page_nodes)

            info = page.get("pageInfo") or {}
            if not info.get("hasNextPage") or _reaches_before(page_nodes, since):
                break
            cursor = info.get("endCursor")

    issues: list[LinearIssue] = []
    for node in nodes:
        try:
            issue = LinearIssue.model_validate(node)
        except ValidationError as exc:
            logger.warning("linear_issue_invalid", id=node.get("id"), error=str(exc))
            continue
        completed = parse_timestamp(issue.completed_at)
        if completed is None or completed < since or issue.state.type != "completed":
            continue
        issues.append(issue)

    logger.info("linear_issues_fetched", done=len(issues), scanned=len(nodes))
    return issues


# ---------------------------------------------------------------------------
# Grouping and report
# ---------------------------------------------------------------------------


def group_by_team(issues: list[LinearIssue]) -> TeamGroups:
    """Team name -> project name -> issues; busiest team first, ties in input order."""
    grouped: dict[str, dict[str, list[LinearIssue]]] = defaultdict(lambda: defaultdict(list))
    for issue in issues:
        grouped[issue.team.name][issue.project_name].append(issue)
    ordered = sorted(
        grouped.items(),
        key=lambda item: -sum(len(project) for project in item[1].values()),
    )
    return {team: dict(projects) for team, projects in ordered}


def build_issue_report(grouped: TeamGroups, now: datetime) -> str:
    """Markdown list of the week's issues, attached under the recap."""
    if not grouped:
        return "No issues completed this week."

    lines = [
        "# Weekly Linear Issues Report",
        "",
        f"*Generated on {now.strftime('%B')} {now.day}, {now.year}*",
        "",
    ]
    for team, projects in grouped.items():
        total = sum(len(issues) for issues in projects.values())
        lines += [f"## {team} ({total} issues)", ""]
        for project, issues in projects.items():
            lines += [f"### {project}", ""]
            lines += [f"- [{issue.identifier}]({issue.url}): {issue.title}" for issue in issues]
            lines.append("")
    return "\n".join(lines)
