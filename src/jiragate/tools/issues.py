"""Issue tools: read, search, create, update, bulk update, link and comment."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from jiragate.core.exceptions import FieldValidationError
from jiragate.core.gate.bulk import run_in_batches
from jiragate.core.gate.rate_limiter import OperationClass
from jiragate.core.security.fields import (
    CUSTOM_FIELD_PREFIX,
    FieldTier,
    allowed_fields_for,
    validate_custom_field,
    validate_issue_fields,
)
from jiragate.core.security.redactor import redact
from jiragate.core.security.validator import (
    check_text_content,
    sanitize_jql,
    validate_destructive_operation,
)
from jiragate.tools.registry import ToolArgs, ToolContext, ToolResult, ToolSpec

_CREATE_FIELDS = allowed_fields_for(FieldTier.BASIC) | {"project", "issuetype"}
_BASIC_FIELDS = allowed_fields_for(FieldTier.BASIC)

# Fields returned by get_issue when present on the issue.
_ISSUE_FIELDS: tuple[tuple[str, str], ...] = (
    ("summary", "summary"),
    ("description", "description"),
    ("status", "status"),
    ("priority", "priority"),
    ("issueType", "issuetype"),
    ("reporter", "reporter"),
    ("assignee", "assignee"),
    ("creator", "creator"),
    ("created", "created"),
    ("updated", "updated"),
    ("duedate", "duedate"),
    ("resolutiondate", "resolutiondate"),
    ("project", "project"),
    ("components", "components"),
    ("fixVersions", "fixVersions"),
    ("affectedVersions", "versions"),
    ("labels", "labels"),
    ("resolution", "resolution"),
    ("environment", "environment"),
    ("timetracking", "timetracking"),
    ("issuelinks", "issuelinks"),
    ("parent", "parent"),
    ("subtasks", "subtasks"),
)


def text_to_adf(text: str) -> dict[str, Any]:
    """Wrap plain text in a single-paragraph Atlassian Document Format document."""
    return {
        "type": "doc",
        "version": 1,
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
    }


def _description(value: str | dict[str, Any]) -> dict[str, Any]:
    return text_to_adf(value) if isinstance(value, str) else value


def attachment_summary(att: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": att.get("id"),
        "filename": att.get("filename"),
        "size": att.get("size"),
        "mimeType": att.get("mimeType"),
        "created": att.get("created"),
        "author": att.get("author"),
    }


def _custom_fields(custom: dict[str, Any]) -> dict[str, Any]:
    for name in custom:
        if not name.startswith(CUSTOM_FIELD_PREFIX):
            raise FieldValidationError(f"Not a custom field ID: {name}", name)
    return {name: validate_custom_field(value, field=name) for name, value in custom.items()}


# ---------------------------------------------------------------------------
# get_issue
# ---------------------------------------------------------------------------


class GetIssueArgs(ToolArgs):
    issue_key: str = Field(description="Issue key (e.g., PROJ-123)")
    include_comments: bool = Field(True, description="Include issue comments")
    include_attachments: bool = Field(True, description="Include attachment metadata")
    include_worklog: bool = Field(False, description="Include work logs")
    include_history: bool = Field(False, description="Include change history")


async def get_issue(ctx: ToolContext, args: GetIssueArgs) -> ToolResult:
    expand = ["renderedFields", "names", "schema", "transitions", "operations", "editmeta"]
    if args.include_history:
        expand.append("changelog")
    issue = await ctx.client.get_issue(args.issue_key, expand=expand)
    raw = issue.get("fields", {})

    fields = {out: raw.get(src) for out, src in _ISSUE_FIELDS if src in raw}
    fields.update({k: v for k, v in raw.items() if k.startswith("customfield_")})
    if args.include_attachments:
        fields["attachments"] = [attachment_summary(a) for a in raw.get("attachment") or []]

    data: dict[str, Any] = {
        "key": issue.get("key"),
        "id": issue.get("id"),
        "self": issue.get("self"),
        "fields": fields,
        "transitions": issue.get("transitions"),
        "renderedFields": issue.get("renderedFields"),
    }
    if args.include_history:
        data["changelog"] = issue.get("changelog")
    if args.include_comments:
        comments = await ctx.client.get_comments(args.issue_key, max_results=100)
        data["comments"] = comments.get("comments", [])
    if args.include_worklog:
        worklogs = await ctx.client.get_worklogs(args.issue_key)
        data["worklogs"] = worklogs.get("worklogs", [])
    return ToolResult(data)


# ---------------------------------------------------------------------------
# search_issues
# ---------------------------------------------------------------------------


class SearchIssuesArgs(ToolArgs):
    jql: str = Field(description='JQL query (e.g., "project = PROJ AND status = Open")')
    max_results: int = Field(50, ge=1, le=100, description="Maximum results (1-100)")
    fields: list[str] | None = Field(None, description="Fields to include")
    next_page_token: str | None = Field(None, description="Token from a previous page")


async def search_issues(ctx: ToolContext, args: SearchIssuesArgs) -> ToolResult:
    jql = sanitize_jql(args.jql)
    result = await ctx.client.search_issues(
        jql,
        max_results=args.max_results,
        fields=args.fields or ("summary", "status", "assignee", "priority", "issuetype"),
        next_page_token=args.next_page_token,
    )
    issues = result.get("issues", [])
    return ToolResult(
        {
            "issues": issues,
            "nextPageToken": result.get("nextPageToken"),
            "isLast": result.get("isLast", True),
        },
        f"Found {len(issues)} issues",
        audit_details={"jql": jql, "result_count": len(issues)},
    )


# ---------------------------------------------------------------------------
# create_issue / update_issue
# ---------------------------------------------------------------------------


class CreateIssueArgs(ToolArgs):
    project_key: str = Field(description="Project key")
    summary: str = Field(description="Issue summary")
    description: str | dict[str, Any] | None = Field(
        None, description="Plain text or an Atlassian Document Format document"
    )
    issue_type: str = Field("Task", description="Issue type name")
    priority: str | None = Field(None, description="Priority name")
    assignee: str | None = Field(None, description="Assignee account ID")
    labels: list[str] | None = Field(None, description="Labels")
    custom_fields: dict[str, Any] | None = Field(
        None, description="customfield_<n> values keyed by field ID"
    )


async def create_issue(ctx: ToolContext, args: CreateIssueArgs) -> ToolResult:
    fields: dict[str, Any] = {
        "project": {"key": args.project_key},
        "summary": args.summary,
        "issuetype": {"name": args.issue_type},
    }
    if args.description:
        fields["description"] = _description(args.description)
    if args.priority:
        fields["priority"] = {"name": args.priority}
    if args.assignee:
        fields["assignee"] = {"accountId": args.assignee}
    if args.labels:
        fields["labels"] = args.labels

    validated = validate_issue_fields(fields, allowed_fields=_CREATE_FIELDS)
    if args.custom_fields:
        validated.update(_custom_fields(args.custom_fields))

    issue = await ctx.client.create_issue(validated)
    return ToolResult(
        {"key": issue.get("key"), "id": issue.get("id"), "self": issue.get("self")},
        f"Issue {issue.get('key')} created",
    )


class UpdateIssueArgs(ToolArgs):
    issue_key: str = Field(description="Issue key")
    summary: str | None = Field(None, description="New summary")
    description: str | dict[str, Any] | None = Field(None, description="New description")
    priority: str | None = Field(None, description="New priority name")
    assignee: str | None = Field(None, description="New assignee account ID")
    labels: list[str] | None = Field(None, description="Replacement labels")
    custom_fields: dict[str, Any] | None = Field(None, description="customfield_<n> values")
    transition_id: str | None = Field(None, description="Workflow transition to apply")
    confirmation: str | None = Field(
        None, description="Confirmation phrase, required for transitions when configured"
    )


def _update_fields(args: UpdateIssueArgs | BulkUpdateIssuesArgs) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if args.summary:
        fields["summary"] = args.summary
    if args.description:
        fields["description"] = _description(args.description)
    if args.priority:
        fields["priority"] = {"name": args.priority}
    if args.assignee:
        fields["assignee"] = {"accountId": args.assignee}
    if args.labels is not None:
        fields["labels"] = args.labels
    validated = validate_issue_fields(fields, allowed_fields=_BASIC_FIELDS)
    if args.custom_fields:
        validated.update(_custom_fields(args.custom_fields))
    return validated


async def update_issue(ctx: ToolContext, args: UpdateIssueArgs) -> ToolResult:
    fields = _update_fields(args)
    if args.transition_id:
        phrase = ctx.config.confirmation_phrase_for("transition_issue")
        if phrase is not None:
            validate_destructive_operation(
                "transition_issue", args.confirmation, confirmation_phrase=phrase
            )
    if not fields and not args.transition_id:
        return ToolResult({"issueKey": args.issue_key}, "Nothing to update")

    if fields:
        await ctx.client.edit_issue(args.issue_key, fields)
    if args.transition_id:
        await ctx.client.transition_issue(args.issue_key, args.transition_id)
    return ToolResult(
        {
            "issueKey": args.issue_key,
            "updatedFields": sorted(fields),
            "transitionId": args.transition_id,
        },
        f"Issue {args.issue_key} updated successfully",
    )


# ---------------------------------------------------------------------------
# bulk_update_issues
# ---------------------------------------------------------------------------


class BulkUpdateIssuesArgs(ToolArgs):
    issue_keys: list[str] = Field(min_length=1, description="Issues to update")
    summary: str | None = None
    description: str | dict[str, Any] | None = None
    priority: str | None = None
    assignee: str | None = None
    labels: list[str] | None = None
    custom_fields: dict[str, Any] | None = None
    confirmation: str | None = Field(None, description="Confirmation phrase (CONFIRM_BULK)")


async def bulk_update_issues(ctx: ToolContext, args: BulkUpdateIssuesArgs) -> ToolResult:
    phrase = ctx.config.confirmation_phrase_for("bulk_update_issues")
    if phrase is not None:
        validate_destructive_operation(
            "bulk_update_issues", args.confirmation, confirmation_phrase=phrase
        )
    fields = _update_fields(args)
    if not fields:
        return ToolResult({"updated": [], "failed": []}, "Nothing to update")

    async def _edit(key: str) -> str:
        await ctx.client.edit_issue(key, fields)
        return key

    results = await run_in_batches(
        args.issue_keys,
        _edit,
        limiter=ctx.limiters.get(OperationClass.BULK),
        key_prefix="bulk_update_issues",
    )
    updated = [r.item for r in results if r.ok]
    failed = [
        {"issueKey": r.item, "error": redact(str(r.error))} for r in results if not r.ok
    ]
    ctx.audit.log_bulk_operation(
        "bulk_update_issues",
        "issue",
        len(args.issue_keys),
        success_count=len(updated),
        failure_count=len(failed),
        success=not failed,
    )
    return ToolResult(
        {"updated": updated, "failed": failed, "updatedFields": sorted(fields)},
        f"Updated {len(updated)} of {len(args.issue_keys)} issues",
    )


# ---------------------------------------------------------------------------
# Links, comments, transitions
# ---------------------------------------------------------------------------


class LinkIssuesArgs(ToolArgs):
    link_type: str = Field(description='Link type name (e.g., "Blocks", "Relates")')
    inward_issue: str = Field(description="Inward issue key")
    outward_issue: str = Field(description="Outward issue key")
    comment: str | None = Field(None, description="Optional comment added with the link")


async def link_issues(ctx: ToolContext, args: LinkIssuesArgs) -> ToolResult:
    check_text_content(args.link_type, "Link type")
    comment = None
    if args.comment:
        check_text_content(args.comment, "Link comment")
        comment = text_to_adf(args.comment)
    await ctx.client.link_issues(
        args.link_type, args.inward_issue, args.outward_issue, comment=comment
    )
    return ToolResult(
        {"inwardIssue": args.inward_issue, "outwardIssue": args.outward_issue},
        f"Linked {args.inward_issue} and {args.outward_issue} ({args.link_type})",
    )


class AddCommentArgs(ToolArgs):
    issue_key: str = Field(description="Issue key")
    body: str = Field(min_length=1, description="Comment text")


async def add_comment(ctx: ToolContext, args: AddCommentArgs) -> ToolResult:
    check_text_content(args.body, "Comment")
    comment = await ctx.client.add_comment(args.issue_key, text_to_adf(args.body))
    return ToolResult({"id": comment.get("id"), "issueKey": args.issue_key}, "Comment added")


class GetIssueCommentsArgs(ToolArgs):
    issue_key: str = Field(description="Issue key")
    max_results: int = Field(50, ge=1, le=100)
    start_at: int = Field(0, ge=0)


async def get_issue_comments(ctx: ToolContext, args: GetIssueCommentsArgs) -> ToolResult:
    return ToolResult(
        await ctx.client.get_comments(
            args.issue_key, max_results=args.max_results, start_at=args.start_at
        )
    )


class GetIssueTransitionsArgs(ToolArgs):
    issue_key: str = Field(description="Issue key")


async def get_issue_transitions(ctx: ToolContext, args: GetIssueTransitionsArgs) -> ToolResult:
    transitions = await ctx.client.get_transitions(args.issue_key)
    return ToolResult(
        [
            {"id": t.get("id"), "name": t.get("name"), "to": (t.get("to") or {}).get("name")}
            for t in transitions
        ]
    )


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        "get_issue",
        "Get detailed information about a Jira issue, with comments, attachments, "
        "worklogs and history on request",
        GetIssueArgs,
        get_issue,
        id_field="issueKey",
    ),
    ToolSpec(
        "search_issues",
        "Search for issues using JQL (Jira Query Language)",
        SearchIssuesArgs,
        search_issues,
        operation_class=OperationClass.SEARCH,
        resource="search",
    ),
    ToolSpec(
        "create_issue",
        "Create a new Jira issue",
        CreateIssueArgs,
        create_issue,
        project_field="projectKey",
        permission_operation="create_issue",
    ),
    ToolSpec(
        "update_issue",
        "Update a Jira issue and optionally transition it",
        UpdateIssueArgs,
        update_issue,
        id_field="issueKey",
        permission_operation="update_issue",
    ),
    ToolSpec(
        "bulk_update_issues",
        "Apply the same field changes to several issues (requires confirmation)",
        BulkUpdateIssuesArgs,
        bulk_update_issues,
        operation_class=OperationClass.BULK,
        count_field="issueKeys",
        permission_operation="bulk_update_issues",
    ),
    ToolSpec(
        "link_issues",
        "Link two issues",
        LinkIssuesArgs,
        link_issues,
        id_field="inwardIssue",
        permission_operation="link_issues",
    ),
    ToolSpec(
        "add_comment",
        "Add a comment to an issue",
        AddCommentArgs,
        add_comment,
        resource="comment",
        id_field="issueKey",
    ),
    ToolSpec(
        "get_issue_comments",
        "Get all comments for an issue",
        GetIssueCommentsArgs,
        get_issue_comments,
        resource="comment",
        id_field="issueKey",
    ),
    ToolSpec(
        "get_issue_transitions",
        "Get available workflow transitions for an issue",
        GetIssueTransitionsArgs,
        get_issue_transitions,
        id_field="issueKey",
    ),
)
