"""Unit tests for the attachment tool handlers."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from jiragate.core.config import GatewayConfig
from jiragate.core.exceptions import SecurityError
from jiragate.core.risk import RiskLevel
from jiragate.tools import attachments
from jiragate.tools.registry import ToolContext


def _ctx_with(ctx: ToolContext, security: dict) -> ToolContext:
    return ToolContext(
        client=ctx.client,
        config=GatewayConfig.model_validate({"security": security}),
        audit=ctx.audit,
        limiters=ctx.limiters,
    )


@pytest.fixture()
def upload_file(tmp_path: Path) -> Path:
    path = tmp_path / "notes.txt"
    path.write_text("release notes")
    return path


class TestUpload:
    @pytest.mark.asyncio
    async def test_uploads_and_audits(
        self, ctx: ToolContext, client: MagicMock, upload_file: Path
    ):
        client.add_attachment.return_value = [{"id": "10", "filename": "notes.txt", "size": 13}]
        args = attachments.UploadAttachmentArgs.model_validate(
            {"issueKey": "P-1", "filePath": str(upload_file)}
        )
        result = await attachments.upload_attachment(ctx, args)

        assert result.data[0]["id"] == "10"
        client.add_attachment.assert_awaited_once_with(
            "P-1", upload_file.resolve(), filename=None
        )
        entry = ctx.audit.get_logs(resource="file")[0]
        assert entry.operation == "upload_attachment"
        assert entry.details["file_size"] == 13

    @pytest.mark.asyncio
    async def test_outside_allowed_directory(
        self, ctx: ToolContext, client: MagicMock, upload_file: Path, tmp_path: Path
    ):
        allowed = tmp_path / "allowed"
        allowed.mkdir()
        ctx = _ctx_with(ctx, {"allowed_directories": [str(allowed)]})
        args = attachments.UploadAttachmentArgs.model_validate(
            {"issueKey": "P-1", "filePath": str(upload_file)}
        )
        with pytest.raises(SecurityError) as exc_info:
            await attachments.upload_attachment(ctx, args)
        assert exc_info.value.code == "PATH_NOT_ALLOWED"
        client.add_attachment.assert_not_called()

    @pytest.mark.asyncio
    async def test_extension_from_config(
        self, ctx: ToolContext, client: MagicMock, upload_file: Path
    ):
        ctx = _ctx_with(ctx, {"allowed_file_extensions": ["pdf"]})
        args = attachments.UploadAttachmentArgs.model_validate(
            {"issueKey": "P-1", "filePath": str(upload_file)}
        )
        with pytest.raises(SecurityError) as exc_info:
            await attachments.upload_attachment(ctx, args)
        assert exc_info.value.code == "EXTENSION_NOT_ALLOWED"

    @pytest.mark.asyncio
    async def test_file_name_with_separator(
        self, ctx: ToolContext, client: MagicMock, upload_file: Path
    ):
        args = attachments.UploadAttachmentArgs.model_validate(
            {"issueKey": "P-1", "filePath": str(upload_file), "fileName": "sub/evil.txt"}
        )
        with pytest.raises(SecurityError):
            await attachments.upload_attachment(ctx, args)
        client.add_attachment.assert_not_called()


class TestDownload:
    @pytest.mark.asyncio
    async def test_downloads(self, ctx: ToolContext, client: MagicMock, tmp_path: Path):
        client.get_attachment.return_value = {"filename": "a.png", "size": 100}
        client.download_attachment.return_value = 100
        dest = tmp_path / "a.png"
        args = attachments.DownloadAttachmentArgs.model_validate(
            {"attachmentId": "10", "savePath": str(dest)}
        )
        result = await attachments.download_attachment(ctx, args)

        assert result.data["size"] == 100
        assert result.data["savedTo"] == str(dest.resolve())
        call = client.download_attachment.call_args
        assert call.args == ("10", dest.resolve())
        assert call.kwargs["max_bytes"] == ctx.config.security.max_file_size

    @pytest.mark.asyncio
    async def test_declared_size_over_cap(
        self, ctx: ToolContext, client: MagicMock, tmp_path: Path
    ):
        ctx = _ctx_with(ctx, {"max_file_size": 2048})
        client.get_attachment.return_value = {"filename": "big.zip", "size": 4096}
        args = attachments.DownloadAttachmentArgs.model_validate(
            {"attachmentId": "10", "savePath": str(tmp_path / "big.zip")}
        )
        with pytest.raises(SecurityError) as exc_info:
            await attachments.download_attachment(ctx, args)
        assert exc_info.value.code == "FILE_TOO_LARGE"
        client.download_attachment.assert_not_called()

    @pytest.mark.asyncio
    async def test_save_path_traversal(self, ctx: ToolContext, client: MagicMock):
        args = attachments.DownloadAttachmentArgs.model_validate(
            {"attachmentId": "10", "savePath": "../../etc/cron.d/job"}
        )
        with pytest.raises(SecurityError):
            await attachments.download_attachment(ctx, args)
        client.get_attachment.assert_not_called()


class TestDelete:
    @pytest.mark.asyncio
    async def test_requires_phrase(self, ctx: ToolContext, client: MagicMock):
        args = attachments.DeleteAttachmentArgs.model_validate(
            {"attachmentId": "10", "confirmation": "yes"}
        )
        with pytest.raises(SecurityError) as exc_info:
            await attachments.delete_attachment(ctx, args)
        assert exc_info.value.code == "CONFIRMATION_REQUIRED"
        client.delete_attachment.assert_not_called()

    @pytest.mark.asyncio
    async def test_confirmed_delete_is_critical(self, ctx: ToolContext, client: MagicMock):
        args = attachments.DeleteAttachmentArgs.model_validate(
            {"attachmentId": "10", "confirmation": "CONFIRM_DELETE"}
        )
        await attachments.delete_attachment(ctx, args)
        client.delete_attachment.assert_awaited_once_with("10")
        entry = ctx.audit.get_logs(operation="delete_attachment")[0]
        assert entry.risk_level == RiskLevel.CRITICAL
        assert entry.resource_id == "10"
        assert entry.details == {"confirmed": True}

    @pytest.mark.asyncio
    async def test_confirmation_disabled(self, ctx: ToolContext, client: MagicMock):
        ctx = _ctx_with(ctx, {"require_confirmation": {"delete": False}})
        args = attachments.DeleteAttachmentArgs.model_validate({"attachmentId": "10"})
        await attachments.delete_attachment(ctx, args)
        client.delete_attachment.assert_awaited_once()


class TestListing:
    @pytest.mark.asyncio
    async def test_list_attachments(self, ctx: ToolContext, client: MagicMock):
        client.get_issue.return_value = {
            "fields": {"attachment": [{"id": "1", "filename": "a.txt"}, {"id": "2"}]}
        }
        args = attachments.IssueAttachmentsArgs.model_validate({"issueKey": "P-1"})
        result = await attachments.list_attachments(ctx, args)
        assert [a["id"] for a in result.data] == ["1", "2"]
        assert client.get_issue.call_args.kwargs["fields"] == ["attachment"]
