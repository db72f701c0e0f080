"""Action gateway - one typed method per backend operation.

All six backend services are reached through a single ``httpx.AsyncClient``
with one timeout and one retry policy. Every method returns an
``ActionResult``; transport failures, timeouts and error statuses are folded
into ``ActionResult(success=False, error=...)`` and never raised to callers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import structlog

from augur.actions.models import (
    ACTIONS_BY_NAME,
    ActionResult,
    AddTeamMember,
    AddUserSkill,
    CreateAnnouncement,
    CreateChannel,
    CreateClient,
    CreateDocument,
    CreateMilestone,
    CreateProject,
    CreateProposal,
    CreateTask,
    CreateTeam,
    CreateWikiPage,
    DeleteProject,
    DeleteTask,
    GetClient,
    GetProject,
    GetTask,
    GetTeam,
    GetTeamMembers,
    GetUserSkills,
    ListChannels,
    ListClients,
    ListMessages,
    ListMilestones,
    ListNotifications,
    ListProjects,
    ListProposals,
    ListTasks,
    ListTeams,
    MarkNotificationRead,
    SearchDocuments,
    SendBulkNotification,
    SendMessage,
    SendNotification,
    UpdateClient,
    UpdateProject,
    UpdateTask,
)
from augur.errors import ToolExecutionError
from augur.utils.resilience import ACTION_RETRY, RetryConfig, call_with_retry

if TYPE_CHECKING:
    from augur.actions.models import Action
    from augur.config import Settings

log = structlog.get_logger()

SERVICE_NAMES = {
    "project": "Project Management Service",
    "client": "Client Management Service",
    "workforce": "Workforce Service",
    "communication": "Communication Service",
    "notification": "Notification Service",
    "knowledge": "Knowledge Hub Service",
}

# Only reads are retried; a write whose response was lost may already have applied
_IDEMPOTENT_METHODS = frozenset({"GET"})


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                return str(body[key])
    return response.text or response.reason_phrase


def _matches_search(item: Any, term: str) -> bool:
    """Case-insensitive match on name/description, or any word of ``term`` in the name."""
    if not isinstance(item, dict):
        return False
    term = term.lower()
    name = str(item.get("name") or "").lower()
    description = str(item.get("description") or "").lower()
    return term in name or term in description or any(w in name for w in term.split())


class ActionGateway:
    """Typed client for the backend domain services."""

    def __init__(
        self,
        service_urls: dict[str, str],
        *,
        timeout: float = 30.0,
        retry_config: RetryConfig = ACTION_RETRY,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        missing = set(SERVICE_NAMES) - set(service_urls)
        if missing:
            raise ValueError(f"Missing service URLs: {', '.join(sorted(missing))}")
        self.service_urls = {name: url.rstrip("/") for name, url in service_urls.items()}
        self.timeout = timeout
        self._retry = retry_config
        self._single_attempt = RetryConfig(
            max_attempts=1, retryable_exceptions=retry_config.retryable_exceptions
        )
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings) -> ActionGateway:
        retry = RetryConfig(
            max_attempts=settings.action_retry_attempts,
            base_delay=ACTION_RETRY.base_delay,
            max_delay=ACTION_RETRY.max_delay,
        )
        return cls(settings.service_urls(), timeout=settings.action_timeout, retry_config=retry)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if the gateway created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _send(
        self,
        service: str,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Issue one request and return the decoded body.

        Raises:
            ToolExecutionError: On error statuses or undecodable bodies.
            httpx.TransportError: On connection failures and timeouts.
        """
        service_name = SERVICE_NAMES[service]
        url = f"{self.service_urls[service]}{path}"
        query = {k: v for k, v in (params or {}).items() if v is not None}

        response = await self._get_client().request(
            method, url, json=json, params=query or None, timeout=self.timeout
        )

        if response.status_code >= 400:
            raise ToolExecutionError(
                f"{service_name} {method} failed: {_error_detail(response)}",
                details={"status_code": response.status_code, "path": path},
            )
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ToolExecutionError(f"{service_name} returned a non-JSON response") from e

    async def _request(
        self,
        service: str,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> ActionResult:
        retry = self._retry if method in _IDEMPOTENT_METHODS else self._single_attempt
        try:
            data = await call_with_retry(
                lambda: self._send(service, method, path, json=json, params=params),
                retry,
                f"{service}:{method} {path}",
            )
        except ToolExecutionError as e:
            log.warning("Backend call failed", service=service, path=path, error=e.message)
            return ActionResult.fail(e.message)
        except httpx.ConnectError:
            message = (
                f"{SERVICE_NAMES[service]} is not available. "
                "Please ensure the service is running."
            )
            log.warning("Backend unreachable", service=service, path=path)
            return ActionResult.fail(message)
        except httpx.TimeoutException:
            log.warning("Backend timed out", service=service, path=path, timeout=self.timeout)
            return ActionResult.fail(
                f"{SERVICE_NAMES[service]} {method} timed out after {self.timeout}s"
            )
        except (httpx.HTTPError, OSError) as e:
            log.warning("Backend transport error", service=service, path=path, error=str(e))
            return ActionResult.fail(f"{SERVICE_NAMES[service]} {method} failed: {e}")
        return ActionResult.ok(data)

    async def _list_with_fallback(
        self,
        service: str,
        path: str,
        params: dict[str, Any],
        search: str | None,
    ) -> ActionResult:
        """List with a search term, matching client-side if the service finds nothing."""
        result = await self._request(service, "GET", path, params={**params, "search": search})
        if not search or not result.success or result.data:
            return result

        everything = await self._request(service, "GET", path, params=params)
        if not everything.success or not isinstance(everything.data, list):
            return result
        matched = [item for item in everything.data if _matches_search(item, search)]
        log.debug("Applied client-side search", path=path, search=search, matched=len(matched))
        return ActionResult.ok(matched)

    async def execute(self, action: Action) -> ActionResult:
        """Run a decoded action through its typed method."""
        if action.action not in ACTIONS_BY_NAME:
            return ActionResult.fail(f'Tool "{action.action}" not found')
        handler = getattr(self, action.action)
        return await handler(action)

    # =========================================================================
    # Project management
    # =========================================================================

    async def create_project(self, params: CreateProject) -> ActionResult:
        return await self._request("project", "POST", "/projects", json=params.body())

    async def get_project(self, params: GetProject) -> ActionResult:
        return await self._request("project", "GET", f"/projects/{params.project_id}")

    async def update_project(self, params: UpdateProject) -> ActionResult:
        body = params.body()
        body.pop("projectId", None)
        return await self._request("project", "PUT", f"/projects/{params.project_id}", json=body)

    async def delete_project(self, params: DeleteProject) -> ActionResult:
        return await self._request("project", "DELETE", f"/projects/{params.project_id}")

    async def list_projects(self, params: ListProjects) -> ActionResult:
        return await self._list_with_fallback(
            "project",
            "/projects",
            {"organizationId": params.organization_id, "status": params.status},
            params.search,
        )

    async def create_task(self, params: CreateTask) -> ActionResult:
        return await self._request("project", "POST", "/tasks", json=params.body())

    async def get_task(self, params: GetTask) -> ActionResult:
        return await self._request("project", "GET", f"/tasks/{params.task_id}")

    async def update_task(self, params: UpdateTask) -> ActionResult:
        body = params.body()
        body.pop("taskId", None)
        return await self._request("project", "PUT", f"/tasks/{params.task_id}", json=body)

    async def delete_task(self, params: DeleteTask) -> ActionResult:
        return await self._request("project", "DELETE", f"/tasks/{params.task_id}")

    async def list_tasks(self, params: ListTasks) -> ActionResult:
        return await self._request("project", "GET", "/tasks", params=params.body())

    async def create_milestone(self, params: CreateMilestone) -> ActionResult:
        return await self._request("project", "POST", "/milestones", json=params.body())

    async def list_milestones(self, params: ListMilestones) -> ActionResult:
        return await self._request(
            "project", "GET", "/milestones", params={"projectId": params.project_id}
        )

    # =========================================================================
    # Client management
    # =========================================================================

    async def create_client(self, params: CreateClient) -> ActionResult:
        return await self._request("client", "POST", "/clients", json=params.body())

    async def get_client(self, params: GetClient) -> ActionResult:
        return await self._request("client", "GET", f"/clients/{params.client_id}")

    async def update_client(self, params: UpdateClient) -> ActionResult:
        body = params.body()
        body.pop("clientId", None)
        return await self._request("client", "PUT", f"/clients/{params.client_id}", json=body)

    async def list_clients(self, params: ListClients) -> ActionResult:
        return await self._list_with_fallback(
            "client",
            "/clients",
            {"organizationId": params.organization_id, "status": params.status},
            params.search,
        )

    async def create_proposal(self, params: CreateProposal) -> ActionResult:
        return await self._request("client", "POST", "/proposals", json=params.body())

    async def list_proposals(self, params: ListProposals) -> ActionResult:
        return await self._request("client", "GET", "/proposals", params=params.body())

    # =========================================================================
    # Workforce management
    # =========================================================================

    async def create_team(self, params: CreateTeam) -> ActionResult:
        return await self._request("workforce", "POST", "/teams", json=params.body())

    async def get_team(self, params: GetTeam) -> ActionResult:
        return await self._request("workforce", "GET", f"/teams/{params.team_id}")

    async def list_teams(self, params: ListTeams) -> ActionResult:
        return await self._list_with_fallback(
            "workforce",
            "/teams",
            {"organizationId": params.organization_id},
            params.search,
        )

    async def add_team_member(self, params: AddTeamMember) -> ActionResult:
        return await self._request("workforce", "POST", "/team-members", json=params.body())

    async def get_team_members(self, params: GetTeamMembers) -> ActionResult:
        return await self._request(
            "workforce", "GET", "/team-members", params={"teamId": params.team_id}
        )

    async def get_user_skills(self, params: GetUserSkills) -> ActionResult:
        return await self._request(
            "workforce", "GET", "/user-skills", params={"userId": params.user_id}
        )

    async def add_user_skill(self, params: AddUserSkill) -> ActionResult:
        return await self._request("workforce", "POST", "/user-skills", json=params.body())

    # =========================================================================
    # Communication
    # =========================================================================

    async def send_message(self, params: SendMessage) -> ActionResult:
        return await self._request("communication", "POST", "/messages", json=params.body())

    async def list_messages(self, params: ListMessages) -> ActionResult:
        return await self._request("communication", "GET", "/messages", params=params.body())

    async def create_channel(self, params: CreateChannel) -> ActionResult:
        return await self._request("communication", "POST", "/channels", json=params.body())

    async def list_channels(self, params: ListChannels) -> ActionResult:
        return await self._request("communication", "GET", "/channels", params=params.body())

    async def create_announcement(self, params: CreateAnnouncement) -> ActionResult:
        return await self._request("communication", "POST", "/announcements", json=params.body())

    # =========================================================================
    # Notification
    # =========================================================================

    async def send_notification(self, params: SendNotification) -> ActionResult:
        return await self._request("notification", "POST", "/notifications", json=params.body())

    async def list_notifications(self, params: ListNotifications) -> ActionResult:
        query: dict[str, Any] = {"userId": params.user_id}
        if params.unread_only:
            query["unreadOnly"] = "true"
        return await self._request("notification", "GET", "/notifications", params=query)

    async def mark_notification_read(self, params: MarkNotificationRead) -> ActionResult:
        return await self._request(
            "notification",
            "PATCH",
            f"/notifications/{params.notification_id}",
            json={"isRead": True},
        )

    async def send_bulk_notification(self, params: SendBulkNotification) -> ActionResult:
        return await self._request(
            "notification", "POST", "/notifications/bulk", json=params.body()
        )

    # =========================================================================
    # Knowledge hub
    # =========================================================================

    async def create_document(self, params: CreateDocument) -> ActionResult:
        return await self._request("knowledge", "POST", "/documents", json=params.body())

    async def search_documents(self, params: SearchDocuments) -> ActionResult:
        query = {
            "organizationId": params.organization_id,
            "search": params.query,
            "category": params.doc_category,
        }
        return await self._request("knowledge", "GET", "/documents", params=query)

    async def create_wiki_page(self, params: CreateWikiPage) -> ActionResult:
        return await self._request("knowledge", "POST", "/wiki", json=params.body())
