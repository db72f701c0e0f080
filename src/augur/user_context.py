"""Facts about the asking user for the question-answering prompt.

Personal questions ("what are my tasks?", "which teams am I on?") need more
than the organization overview. The gateway provider assembles the user's
work summary from the backend services' own list endpoints.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from augur.actions.models import GetTeamMembers, ListProjects, ListTasks, ListTeams

if TYPE_CHECKING:
    from augur.actions.gateway import ActionGateway
    from augur.actions.models import ActionResult

log = structlog.get_logger()

PENDING_STATUSES = frozenset({"todo", "pending", "in_progress"})
DONE_STATUSES = frozenset({"completed", "done"})


@dataclass
class UserContext:
    user_id: str
    name: str | None = None
    team_names: list[str] = field(default_factory=list)
    assigned_tasks: int = 0
    pending_tasks: int = 0
    overdue_tasks: int = 0
    projects: int = 0
    clients: int = 0


class UserContextProvider(Protocol):
    async def get(
        self, organization_id: str, user_id: str, *, user_name: str | None = None
    ) -> UserContext | None: ...


def format_user_context(ctx: UserContext) -> str:
    """Render the user's facts as a block for the system prompt."""
    teams = ", ".join(ctx.team_names) if ctx.team_names else "No teams assigned"
    return "\n".join(
        [
            "=== CURRENT USER FACTS (VERIFIED DATA) ===",
            f"Name: {ctx.name or 'Unknown User'}",
            f"User ID: {ctx.user_id}",
            f"Teams: {teams}",
            "",
            "User's Work Summary:",
            f"- Assigned Tasks: {ctx.assigned_tasks}",
            f"- Pending Tasks: {ctx.pending_tasks}",
            f"- Overdue Tasks: {ctx.overdue_tasks}",
            f"- Projects Involved: {ctx.projects}",
            f"- Clients Associated: {ctx.clients}",
            "===========================================",
        ]
    )


def _items(result: ActionResult) -> list[dict[str, Any]] | None:
    """List payload of a successful read, or None when the read failed."""
    if not result.success:
        return None
    data = result.data
    if isinstance(data, dict):
        data = data.get("data", data.get("items"))
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def _is_overdue(task: dict[str, Any], today: date) -> bool:
    due = task.get("dueDate")
    if not due or task.get("status") in DONE_STATUSES:
        return False
    try:
        return date.fromisoformat(str(due)[:10]) < today
    except ValueError:
        return False


def _member_ids(members: Any) -> set[str]:
    ids: set[str] = set()
    for member in members or []:
        if isinstance(member, dict):
            ids.add(str(member.get("userId") or member.get("id") or ""))
        else:
            ids.add(str(member))
    return ids


class GatewayUserContextProvider:
    """Builds a ``UserContext`` from task, team and project reads.

    Any failed read yields ``None``; the answer then goes ahead without
    personal facts.
    """

    def __init__(self, gateway: ActionGateway) -> None:
        self._gateway = gateway

    async def get(
        self, organization_id: str, user_id: str, *, user_name: str | None = None
    ) -> UserContext | None:
        tasks_result, teams_result, projects_result = await asyncio.gather(
            self._gateway.list_tasks(ListTasks(assignee_id=user_id)),
            self._gateway.list_teams(ListTeams(organization_id=organization_id)),
            self._gateway.list_projects(ListProjects(organization_id=organization_id)),
        )
        tasks = _items(tasks_result)
        teams = _items(teams_result)
        projects = _items(projects_result)
        if tasks is None or teams is None or projects is None:
            log.warning(
                "User context unavailable",
                organization_id=organization_id,
                user_id=user_id,
            )
            return None

        team_names = await self._team_names(teams, user_id)
        if team_names is None:
            log.warning(
                "User context unavailable", organization_id=organization_id, user_id=user_id
            )
            return None

        today = datetime.now(UTC).date()
        mine = [
            p
            for p in projects
            if p.get("managerId") == user_id or user_id in _member_ids(p.get("members"))
        ]
        client_ids = {str(p["clientId"]) for p in mine if p.get("clientId")}
        for project in mine:
            client_ids.update(str(c) for c in project.get("clientIds") or [])

        return UserContext(
            user_id=user_id,
            name=user_name,
            team_names=team_names,
            assigned_tasks=len(tasks),
            pending_tasks=sum(1 for t in tasks if t.get("status") in PENDING_STATUSES),
            overdue_tasks=sum(1 for t in tasks if _is_overdue(t, today)),
            projects=len(mine),
            clients=len(client_ids),
        )

    async def _team_names(self, teams: list[dict[str, Any]], user_id: str) -> list[str] | None:
        """Names of the teams ``user_id`` belongs to, reading rosters the listing omits."""
        unlisted = [t for t in teams if "members" not in t and t.get("id")]
        rosters = await asyncio.gather(
            *(self._gateway.get_team_members(GetTeamMembers(team_id=t["id"])) for t in unlisted)
        )
        members_by_team: dict[str, Any] = {}
        for team, roster in zip(unlisted, rosters, strict=True):
            members = _items(roster)
            if members is None:
                return None
            members_by_team[team["id"]] = members

        return [
            str(team.get("name") or team.get("id"))
            for team in teams
            if user_id in _member_ids(team.get("members", members_by_team.get(team.get("id"))))
        ]
