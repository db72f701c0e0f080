"""Action kinds the agent can invoke.

Every action is a pydantic model tagged by its ``action`` literal, so the set
of actions is a closed discriminated union. ``decode_action`` turns a tool
name and the model's argument bag into a validated action, and the same
models produce the JSON schemas bound to the chat model.

Field names are snake_case in Python and camelCase on the wire, both towards
the model and towards the backend services.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from augur.errors import ActionValidationError, ToolNotFoundError


class ActionCategory(StrEnum):
    PROJECT_MANAGEMENT = "project_management"
    CLIENT_MANAGEMENT = "client_management"
    WORKFORCE_MANAGEMENT = "workforce_management"
    COMMUNICATION = "communication"
    NOTIFICATION = "notification"
    KNOWLEDGE_HUB = "knowledge_hub"


class ActionResult(BaseModel):
    """Uniform outcome of every backend call."""

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> ActionResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> ActionResult:
        return cls(success=False, error=error)


class ActionParams(BaseModel):
    """Base for every action's parameters."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    description: ClassVar[str] = ""
    category: ClassVar[ActionCategory]

    def body(self) -> dict[str, Any]:
        """Wire payload: camelCase keys, unset optionals omitted."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"action"})


ProjectStatus = Literal["planned", "in_progress", "on_hold", "completed", "cancelled"]
TaskStatus = Literal["todo", "in_progress", "in_review", "done", "blocked"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
MilestoneStatus = Literal["pending", "in_progress", "completed", "missed"]
ClientStatus = Literal["active", "inactive", "prospect", "churned"]
ProposalStatus = Literal["draft", "sent", "accepted", "rejected", "expired"]
NotificationType = Literal["info", "success", "warning", "error", "task", "mention", "reminder"]


# =============================================================================
# Project management
# =============================================================================


class CreateProject(ActionParams):
    action: Literal["create_project"] = "create_project"
    description: ClassVar[str] = (
        "Create a new project in the organization. Use this when the user asks to "
        "create, add, or start a new project."
    )
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    organization_id: str = Field(description="The ID of the organization to create the project in")
    name: str = Field(description="The name of the project")
    details: str | None = Field(
        default=None, alias="description", description="A description of the project"
    )
    status: ProjectStatus = Field(default="planned", description="The initial status")
    start_date: str | None = Field(default=None, description="Start date (YYYY-MM-DD)")
    end_date: str | None = Field(default=None, description="End date (YYYY-MM-DD)")
    budget: float | None = Field(default=None, description="The budget for the project")
    manager_id: str | None = Field(default=None, description="The ID of the project manager")
    client_id: str | None = Field(default=None, description="The client this project is for")


class GetProject(ActionParams):
    action: Literal["get_project"] = "get_project"
    description: ClassVar[str] = "Get details of a specific project by its ID."
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    project_id: str = Field(description="The ID of the project to retrieve")


class UpdateProject(ActionParams):
    action: Literal["update_project"] = "update_project"
    description: ClassVar[str] = (
        "Update an existing project. Use this to modify project details, status, "
        "or other properties."
    )
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    project_id: str = Field(description="The ID of the project to update")
    name: str | None = Field(default=None, description="New name for the project")
    details: str | None = Field(default=None, alias="description", description="New description")
    status: ProjectStatus | None = Field(default=None, description="New status")
    start_date: str | None = Field(default=None, description="New start date")
    end_date: str | None = Field(default=None, description="New end date")
    budget: float | None = Field(default=None, description="New budget")
    progress: float | None = Field(default=None, ge=0, le=100, description="Progress (0-100)")
    manager_id: str | None = Field(default=None, description="New project manager ID")


class DeleteProject(ActionParams):
    action: Literal["delete_project"] = "delete_project"
    description: ClassVar[str] = "Delete a project by its ID. Only use when explicitly asked."
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    project_id: str = Field(description="The ID of the project to delete")


class ListProjects(ActionParams):
    action: Literal["list_projects"] = "list_projects"
    description: ClassVar[str] = (
        "List all projects in an organization. First try without a search term to see "
        "all projects, then use search to filter. The search is case-insensitive and "
        "matches partial project names."
    )
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    organization_id: str = Field(description="The organization ID to list projects for")
    status: ProjectStatus | None = Field(default=None, description="Filter by project status")
    search: str | None = Field(default=None, description="Case-insensitive partial name match")


class CreateTask(ActionParams):
    action: Literal["create_task"] = "create_task"
    description: ClassVar[str] = (
        "Create a new task within a project. Use this when the user asks to add, "
        "create, or assign a new task."
    )
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    project_id: str = Field(description="The ID of the project to add the task to")
    title: str = Field(description="The title of the task")
    details: str | None = Field(
        default=None, alias="description", description="A detailed description of the task"
    )
    status: TaskStatus = Field(default="todo", description="The initial status")
    priority: TaskPriority = Field(default="medium", description="The priority level")
    due_date: str | None = Field(default=None, description="Due date (YYYY-MM-DD)")
    assignee_id: str | None = Field(default=None, description="The user to assign the task to")
    estimated_hours: float | None = Field(default=None, description="Estimated hours")


class GetTask(ActionParams):
    action: Literal["get_task"] = "get_task"
    description: ClassVar[str] = "Get details of a specific task by its ID."
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    task_id: str = Field(description="The ID of the task to retrieve")


class UpdateTask(ActionParams):
    action: Literal["update_task"] = "update_task"
    description: ClassVar[str] = (
        "Update an existing task. Use this to change task status, priority, assignee, "
        "or other properties."
    )
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    task_id: str = Field(description="The ID of the task to update")
    title: str | None = Field(default=None, description="New title")
    details: str | None = Field(default=None, alias="description", description="New description")
    status: TaskStatus | None = Field(default=None, description="New status")
    priority: TaskPriority | None = Field(default=None, description="New priority")
    due_date: str | None = Field(default=None, description="New due date")
    assignee_id: str | None = Field(default=None, description="New assignee ID")
    estimated_hours: float | None = Field(default=None, description="New estimated hours")
    actual_hours: float | None = Field(default=None, description="Actual hours spent")


class DeleteTask(ActionParams):
    action: Literal["delete_task"] = "delete_task"
    description: ClassVar[str] = "Delete a task by its ID. Only use when explicitly asked."
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    task_id: str = Field(description="The ID of the task to delete")


class ListTasks(ActionParams):
    action: Literal["list_tasks"] = "list_tasks"
    description: ClassVar[str] = "List tasks. Can filter by project, assignee, or status."
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    project_id: str | None = Field(default=None, description="Filter by project ID")
    assignee_id: str | None = Field(default=None, description="Filter by assignee ID")
    status: TaskStatus | None = Field(default=None, description="Filter by status")


class CreateMilestone(ActionParams):
    action: Literal["create_milestone"] = "create_milestone"
    description: ClassVar[str] = (
        "Create a new milestone for a project. Milestones mark important points or "
        "deliverables in a project."
    )
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    project_id: str = Field(description="The ID of the project")
    name: str = Field(description="The name of the milestone")
    details: str | None = Field(
        default=None, alias="description", description="Description of the milestone"
    )
    due_date: str | None = Field(default=None, description="Due date in ISO format")
    status: MilestoneStatus = Field(default="pending", description="The status")


class ListMilestones(ActionParams):
    action: Literal["list_milestones"] = "list_milestones"
    description: ClassVar[str] = "List all milestones for a project."
    category: ClassVar[ActionCategory] = ActionCategory.PROJECT_MANAGEMENT

    project_id: str = Field(description="The project ID to list milestones for")


# =============================================================================
# Client management
# =============================================================================


class CreateClient(ActionParams):
    action: Literal["create_client"] = "create_client"
    description: ClassVar[str] = (
        "Create a new client in the organization. Use this when adding a new customer "
        "or client."
    )
    category: ClassVar[ActionCategory] = ActionCategory.CLIENT_MANAGEMENT

    organization_id: str = Field(description="The organization ID")
    name: str = Field(description="The client name")
    email: str | None = Field(default=None, description="Client email address")
    phone: str | None = Field(default=None, description="Client phone number")
    company: str | None = Field(default=None, description="Company name")
    industry: str | None = Field(default=None, description="Industry sector")
    status: ClientStatus = Field(default="active", description="Client status")
    notes: str | None = Field(default=None, description="Additional notes about the client")


class GetClient(ActionParams):
    action: Literal["get_client"] = "get_client"
    description: ClassVar[str] = "Get details of a specific client by their ID."
    category: ClassVar[ActionCategory] = ActionCategory.CLIENT_MANAGEMENT

    client_id: str = Field(description="The ID of the client to retrieve")


class UpdateClient(ActionParams):
    action: Literal["update_client"] = "update_client"
    description: ClassVar[str] = "Update an existing client record."
    category: ClassVar[ActionCategory] = ActionCategory.CLIENT_MANAGEMENT

    client_id: str = Field(description="The ID of the client to update")
    name: str | None = Field(default=None, description="New name")
    email: str | None = Field(default=None, description="New email")
    phone: str | None = Field(default=None, description="New phone")
    company: str | None = Field(default=None, description="New company")
    industry: str | None = Field(default=None, description="New industry")
    status: ClientStatus | None = Field(default=None, description="New status")
    notes: str | None = Field(default=None, description="New notes")


class ListClients(ActionParams):
    action: Literal["list_clients"] = "list_clients"
    description: ClassVar[str] = (
        "List all clients in an organization. Can filter by status or search by name."
    )
    category: ClassVar[ActionCategory] = ActionCategory.CLIENT_MANAGEMENT

    organization_id: str = Field(description="The organization ID")
    status: ClientStatus | None = Field(default=None, description="Filter by status")
    search: str | None = Field(default=None, description="Search term to filter by name")


class CreateProposal(ActionParams):
    action: Literal["create_proposal"] = "create_proposal"
    description: ClassVar[str] = (
        "Create a new proposal for a client. Proposals are formal offers for projects "
        "or services."
    )
    category: ClassVar[ActionCategory] = ActionCategory.CLIENT_MANAGEMENT

    client_id: str = Field(description="The client ID")
    organization_id: str = Field(description="The organization ID")
    title: str = Field(description="The proposal title")
    details: str | None = Field(
        default=None, alias="description", description="Detailed description of the proposal"
    )
    amount: float | None = Field(default=None, description="The proposed amount/price")
    status: ProposalStatus = Field(default="draft", description="Proposal status")
    valid_until: str | None = Field(default=None, description="Expiry date in ISO format")
    created_by_id: str | None = Field(default=None, description="User creating the proposal")


class ListProposals(ActionParams):
    action: Literal["list_proposals"] = "list_proposals"
    description: ClassVar[str] = "List proposals. Can filter by client or status."
    category: ClassVar[ActionCategory] = ActionCategory.CLIENT_MANAGEMENT

    organization_id: str = Field(description="The organization ID")
    client_id: str | None = Field(default=None, description="Filter by client ID")
    status: ProposalStatus | None = Field(default=None, description="Filter by status")


# =============================================================================
# Workforce management
# =============================================================================


class CreateTeam(ActionParams):
    action: Literal["create_team"] = "create_team"
    description: ClassVar[str] = (
        "Create a new team in the organization. Teams are groups of members working together."
    )
    category: ClassVar[ActionCategory] = ActionCategory.WORKFORCE_MANAGEMENT

    organization_id: str = Field(description="The organization ID")
    name: str = Field(description="The team name")
    details: str | None = Field(default=None, alias="description", description="Team description")
    leader_id: str | None = Field(default=None, description="ID of the team leader")


class GetTeam(ActionParams):
    action: Literal["get_team"] = "get_team"
    description: ClassVar[str] = "Get details of a specific team by its ID."
    category: ClassVar[ActionCategory] = ActionCategory.WORKFORCE_MANAGEMENT

    team_id: str = Field(description="The ID of the team to retrieve")


class ListTeams(ActionParams):
    action: Literal["list_teams"] = "list_teams"
    description: ClassVar[str] = "List all teams in an organization."
    category: ClassVar[ActionCategory] = ActionCategory.WORKFORCE_MANAGEMENT

    organization_id: str = Field(description="The organization ID")
    search: str | None = Field(default=None, description="Search term to filter teams")


class AddTeamMember(ActionParams):
    action: Literal["add_team_member"] = "add_team_member"
    description: ClassVar[str] = "Add a user to a team."
    category: ClassVar[ActionCategory] = ActionCategory.WORKFORCE_MANAGEMENT

    team_id: str = Field(description="The team ID")
    user_id: str = Field(description="The user ID to add")
    role: str | None = Field(default=None, description='The role in the team, e.g. "member"')


class GetTeamMembers(ActionParams):
    action: Literal["get_team_members"] = "get_team_members"
    description: ClassVar[str] = "Get all members of a team."
    category: ClassVar[ActionCategory] = ActionCategory.WORKFORCE_MANAGEMENT

    team_id: str = Field(description="The team ID")


class GetUserSkills(ActionParams):
    action: Literal["get_user_skills"] = "get_user_skills"
    description: ClassVar[str] = "Get all skills of a specific user."
    category: ClassVar[ActionCategory] = ActionCategory.WORKFORCE_MANAGEMENT

    user_id: str = Field(description="The user ID")


class AddUserSkill(ActionParams):
    action: Literal["add_user_skill"] = "add_user_skill"
    description: ClassVar[str] = "Add a skill to a user profile."
    category: ClassVar[ActionCategory] = ActionCategory.WORKFORCE_MANAGEMENT

    user_id: str = Field(description="The user ID")
    skill_name: str = Field(description="The name of the skill")
    proficiency_level: Literal["beginner", "intermediate", "advanced", "expert"] | None = Field(
        default=None, description="Skill proficiency level"
    )
    years_of_experience: float | None = Field(default=None, description="Years of experience")


# =============================================================================
# Communication
# =============================================================================


class SendMessage(ActionParams):
    action: Literal["send_message"] = "send_message"
    description: ClassVar[str] = (
        "Send a message to a channel. Use this to send messages on behalf of the user."
    )
    category: ClassVar[ActionCategory] = ActionCategory.COMMUNICATION

    channel_id: str = Field(description="The channel ID to send the message to")
    sender_id: str = Field(description="The ID of the user sending the message")
    content: str = Field(description="The message content")
    message_type: Literal["text", "file", "image", "system"] = Field(
        default="text", description="Type of message"
    )


class ListMessages(ActionParams):
    action: Literal["list_messages"] = "list_messages"
    description: ClassVar[str] = "Get messages from a channel."
    category: ClassVar[ActionCategory] = ActionCategory.COMMUNICATION

    channel_id: str = Field(description="The channel ID")
    limit: int = Field(default=50, ge=1, le=500, description="Maximum messages to retrieve")


class CreateChannel(ActionParams):
    action: Literal["create_channel"] = "create_channel"
    description: ClassVar[str] = "Create a new communication channel for team discussions."
    category: ClassVar[ActionCategory] = ActionCategory.COMMUNICATION

    organization_id: str = Field(description="The organization ID")
    name: str = Field(description="The channel name")
    details: str | None = Field(
        default=None, alias="description", description="Channel description"
    )
    channel_type: Literal["general", "project", "team", "direct"] = Field(
        default="general", description="Type of channel"
    )
    is_private: bool = Field(default=False, description="Whether the channel is private")
    member_ids: list[str] | None = Field(default=None, description="Initial member IDs")
    created_by_id: str = Field(description="ID of the user creating the channel")


class ListChannels(ActionParams):
    action: Literal["list_channels"] = "list_channels"
    description: ClassVar[str] = "List communication channels."
    category: ClassVar[ActionCategory] = ActionCategory.COMMUNICATION

    organization_id: str = Field(description="The organization ID")
    user_id: str | None = Field(default=None, description="Filter channels for a specific user")


class CreateAnnouncement(ActionParams):
    action: Literal["create_announcement"] = "create_announcement"
    description: ClassVar[str] = "Create an organization-wide announcement."
    category: ClassVar[ActionCategory] = ActionCategory.COMMUNICATION

    organization_id: str = Field(description="The organization ID")
    title: str = Field(description="The announcement title")
    content: str = Field(description="The announcement content")
    priority: Literal["low", "normal", "high", "urgent"] = Field(
        default="normal", description="Priority level"
    )
    created_by_id: str = Field(description="ID of the user creating the announcement")
    expires_at: str | None = Field(default=None, description="Expiry date in ISO format")


# =============================================================================
# Notification
# =============================================================================


class SendNotification(ActionParams):
    action: Literal["send_notification"] = "send_notification"
    description: ClassVar[str] = "Send a notification to a specific user."
    category: ClassVar[ActionCategory] = ActionCategory.NOTIFICATION

    user_id: str = Field(description="The ID of the user to notify")
    type: NotificationType = Field(description="Type of notification")
    title: str = Field(description="Notification title")
    message: str = Field(description="Notification message")
    priority: Literal["low", "normal", "high"] = Field(default="normal", description="Priority")
    action_url: str | None = Field(default=None, description="URL opened when clicked")


class ListNotifications(ActionParams):
    action: Literal["list_notifications"] = "list_notifications"
    description: ClassVar[str] = "List notifications for a user."
    category: ClassVar[ActionCategory] = ActionCategory.NOTIFICATION

    user_id: str = Field(description="The user ID")
    unread_only: bool = Field(default=False, description="Only return unread notifications")


class MarkNotificationRead(ActionParams):
    action: Literal["mark_notification_read"] = "mark_notification_read"
    description: ClassVar[str] = "Mark a notification as read."
    category: ClassVar[ActionCategory] = ActionCategory.NOTIFICATION

    notification_id: str = Field(description="The notification ID")


class SendBulkNotification(ActionParams):
    action: Literal["send_bulk_notification"] = "send_bulk_notification"
    description: ClassVar[str] = "Send notifications to multiple users at once."
    category: ClassVar[ActionCategory] = ActionCategory.NOTIFICATION

    user_ids: list[str] = Field(min_length=1, description="User IDs to notify")
    type: NotificationType = Field(description="Type of notification")
    title: str = Field(description="Notification title")
    message: str = Field(description="Notification message")
    priority: Literal["low", "normal", "high"] = Field(default="normal", description="Priority")


# =============================================================================
# Knowledge hub
# =============================================================================


class CreateDocument(ActionParams):
    action: Literal["create_document"] = "create_document"
    description: ClassVar[str] = "Create a new document in the knowledge hub."
    category: ClassVar[ActionCategory] = ActionCategory.KNOWLEDGE_HUB

    organization_id: str = Field(description="The organization ID")
    title: str = Field(description="Document title")
    content: str = Field(description="Document content")
    doc_category: str | None = Field(
        default=None, alias="category", description="Document category"
    )
    tags: list[str] | None = Field(default=None, description="Tags for the document")
    created_by_id: str = Field(description="ID of the user creating the document")


class SearchDocuments(ActionParams):
    action: Literal["search_documents"] = "search_documents"
    description: ClassVar[str] = "Search for documents in the knowledge hub."
    category: ClassVar[ActionCategory] = ActionCategory.KNOWLEDGE_HUB

    organization_id: str = Field(description="The organization ID")
    query: str = Field(description="Search query")
    doc_category: str | None = Field(
        default=None, alias="category", description="Filter by category"
    )


class CreateWikiPage(ActionParams):
    action: Literal["create_wiki_page"] = "create_wiki_page"
    description: ClassVar[str] = "Create a new wiki page in the knowledge hub."
    category: ClassVar[ActionCategory] = ActionCategory.KNOWLEDGE_HUB

    organization_id: str = Field(description="The organization ID")
    title: str = Field(description="Wiki page title")
    content: str = Field(description="Wiki page content in markdown format")
    parent_id: str | None = Field(default=None, description="Parent page ID for nested pages")
    created_by_id: str = Field(description="ID of the user creating the page")


# =============================================================================
# Union and decoding
# =============================================================================

ACTION_TYPES: tuple[type[ActionParams], ...] = (
    CreateProject,
    GetProject,
    UpdateProject,
    DeleteProject,
    ListProjects,
    CreateTask,
    GetTask,
    UpdateTask,
    DeleteTask,
    ListTasks,
    CreateMilestone,
    ListMilestones,
    CreateClient,
    GetClient,
    UpdateClient,
    ListClients,
    CreateProposal,
    ListProposals,
    CreateTeam,
    GetTeam,
    ListTeams,
    AddTeamMember,
    GetTeamMembers,
    GetUserSkills,
    AddUserSkill,
    SendMessage,
    ListMessages,
    CreateChannel,
    ListChannels,
    CreateAnnouncement,
    SendNotification,
    ListNotifications,
    MarkNotificationRead,
    SendBulkNotification,
    CreateDocument,
    SearchDocuments,
    CreateWikiPage,
)

Action = Annotated[
    CreateProject
    | GetProject
    | UpdateProject
    | DeleteProject
    | ListProjects
    | CreateTask
    | GetTask
    | UpdateTask
    | DeleteTask
    | ListTasks
    | CreateMilestone
    | ListMilestones
    | CreateClient
    | GetClient
    | UpdateClient
    | ListClients
    | CreateProposal
    | ListProposals
    | CreateTeam
    | GetTeam
    | ListTeams
    | AddTeamMember
    | GetTeamMembers
    | GetUserSkills
    | AddUserSkill
    | SendMessage
    | ListMessages
    | CreateChannel
    | ListChannels
    | CreateAnnouncement
    | SendNotification
    | ListNotifications
    | MarkNotificationRead
    | SendBulkNotification
    | CreateDocument
    | SearchDocuments
    | CreateWikiPage,
    Field(discriminator="action"),
]

_ACTION_ADAPTER: TypeAdapter[Action] = TypeAdapter(Action)


def action_name(action_type: type[ActionParams]) -> str:
    return action_type.model_fields["action"].default


ACTIONS_BY_NAME: dict[str, type[ActionParams]] = {action_name(t): t for t in ACTION_TYPES}


def decode_action(name: str, arguments: dict[str, Any]) -> Action:
    """Validate a tool call into a typed action.

    Raises:
        ToolNotFoundError: If ``name`` is not a known action.
        ActionValidationError: If ``arguments`` do not fit the action's model.
    """
    if name not in ACTIONS_BY_NAME:
        raise ToolNotFoundError(name)
    try:
        return _ACTION_ADAPTER.validate_python({**arguments, "action": name})
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'][1:]) or 'arguments'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ActionValidationError(name, errors) from e


def tool_schema(action_type: type[ActionParams]) -> dict[str, Any]:
    """JSON schema for the model, without the ``action`` tag."""
    schema = action_type.model_json_schema(by_alias=True)
    schema.get("properties", {}).pop("action", None)
    if "required" in schema:
        schema["required"] = [r for r in schema["required"] if r != "action"]
    schema.pop("title", None)
    return schema
