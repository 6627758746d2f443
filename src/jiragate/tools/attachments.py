"""
Attachment tools.

Local paths are checked against the configured allowed directories,
extensions and size cap before any file is read or written.  Deleting
an attachment is destructive and needs the configured confirmation.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from jiragate.core.exceptions import SecurityError
from jiragate.core.gate.rate_limiter import OperationClass
from jiragate.core.security.validator import (
    check_text_content,
    validate_destructive_operation,
    validate_file_path,
    validate_save_path,
)
from jiragate.tools.issues import attachment_summary
from jiragate.tools.registry import ToolArgs, ToolContext, ToolResult, ToolSpec


class UploadAttachmentArgs(ToolArgs):
    issue_key: str = Field(description="Issue key (e.g., PROJ-123)")
    file_path: str = Field(description="Path to the file to upload")
    file_name: str | None = Field(None, description="Optional filename shown in Jira")


async def upload_attachment(ctx: ToolContext, args: UploadAttachmentArgs) -> ToolResult:
    sec = ctx.config.security
    path = validate_file_path(
        args.file_path,
        allowed_extensions=sec.allowed_file_extensions,
        max_file_size=sec.max_file_size,
        allowed_directories=sec.allowed_directories,
    )
    if args.file_name:
        check_text_content(args.file_name, "File name")
        if "/" in args.file_name or "\\" in args.file_name:
            raise SecurityError(
                "File name must not contain path separators", "DANGEROUS_PATH_PATTERN"
            )

    size = path.stat().st_size
    attachments = await ctx.client.add_attachment(args.issue_key, path, filename=args.file_name)
    ctx.audit.log_file_operation("upload_attachment", str(path), file_size=size)
    return ToolResult(
        [attachment_summary(a) for a in attachments or []],
        f"Uploaded {path.name} to {args.issue_key}",
    )


class DownloadAttachmentArgs(ToolArgs):
    attachment_id: str = Field(description="Attachment ID")
    save_path: str = Field(description="Path to save the file to")


async def download_attachment(ctx: ToolContext, args: DownloadAttachmentArgs) -> ToolResult:
    sec = ctx.config.security
    destination = validate_save_path(args.save_path, allowed_directories=sec.allowed_directories)

    meta = await ctx.client.get_attachment(args.attachment_id)
    declared = meta.get("size")
    if isinstance(declared, int) and declared > sec.max_file_size:
        raise SecurityError(
            f"Attachment too large: {declared} bytes (max: {sec.max_file_size})",
            "FILE_TOO_LARGE",
        )

    written = await ctx.client.download_attachment(
        args.attachment_id, destination, max_bytes=sec.max_file_size
    )
    ctx.audit.log_file_operation("download_attachment", str(destination), file_size=written)
    return ToolResult(
        {
            "fileName": meta.get("filename"),
            "size": written,
            "mimeType": meta.get("mimeType"),
            "savedTo": str(destination),
        },
        f"Saved {meta.get('filename')} to {destination}",
    )


class IssueAttachmentsArgs(ToolArgs):
    issue_key: str = Field(description="Issue key (e.g., PROJ-123)")


async def list_attachments(ctx: ToolContext, args: IssueAttachmentsArgs) -> ToolResult:
    issue = await ctx.client.get_issue(args.issue_key, fields=["attachment"])
    raw: list[dict[str, Any]] = issue.get("fields", {}).get("attachment") or []
    return ToolResult([attachment_summary(a) for a in raw], f"{len(raw)} attachments")


class AttachmentArgs(ToolArgs):
    attachment_id: str = Field(description="Attachment ID")


async def get_attachment_meta(ctx: ToolContext, args: AttachmentArgs) -> ToolResult:
    return ToolResult(await ctx.client.get_attachment(args.attachment_id))


class DeleteAttachmentArgs(ToolArgs):
    attachment_id: str = Field(description="Attachment ID")
    confirmation: str | None = Field(None, description="Confirmation phrase (CONFIRM_DELETE)")


async def delete_attachment(ctx: ToolContext, args: DeleteAttachmentArgs) -> ToolResult:
    phrase = ctx.config.confirmation_phrase_for("delete_attachment")
    if phrase is not None:
        validate_destructive_operation(
            "delete_attachment", args.confirmation, confirmation_phrase=phrase
        )
    await ctx.client.delete_attachment(args.attachment_id)
    ctx.audit.log_destructive_operation(
        "delete_attachment", "attachment", args.attachment_id, confirmed=phrase is not None
    )
    return ToolResult(
        {"attachmentId": args.attachment_id}, f"Attachment {args.attachment_id} deleted"
    )


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        "upload_attachment",
        "Upload a file attachment to a Jira issue",
        UploadAttachmentArgs,
        upload_attachment,
        operation_class=OperationClass.FILE,
        resource="attachment",
        id_field="issueKey",
        permission_operation="upload_attachment",
    ),
    ToolSpec(
        "download_attachment",
        "Download an attachment from Jira to a local file",
        DownloadAttachmentArgs,
        download_attachment,
        operation_class=OperationClass.FILE,
        resource="attachment",
        id_field="attachmentId",
    ),
    ToolSpec(
        "list_attachments",
        "List all attachments on a Jira issue",
        IssueAttachmentsArgs,
        list_attachments,
        resource="attachment",
        id_field="issueKey",
    ),
    ToolSpec(
        "get_attachment_meta",
        "Get attachment metadata",
        AttachmentArgs,
        get_attachment_meta,
        resource="attachment",
        id_field="attachmentId",
    ),
    ToolSpec(
        "delete_attachment",
        "Delete an attachment from Jira (DESTRUCTIVE - requires confirmation)",
        DeleteAttachmentArgs,
        delete_attachment,
        resource="attachment",
        id_field="attachmentId",
        permission_operation="delete_attachment",
    ),
)
