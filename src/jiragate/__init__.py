"""
jiragate: governed Model Context Protocol gateway for Jira.

jiragate exposes Jira Cloud operations to an AI assistant as MCP tools.
Every tool call passes through a governance pipeline before it reaches
Jira: rate limiting, input sanitization, field validation, advisory
permission checks and a risk-classified audit journal.

Package layout (src/jiragate/):
  core/       config, logging, exceptions, governance pipeline
  core/gate/  sliding-window rate limiting and bulk batching
  core/audit/ in-memory audit journal
  core/security/ input, field and permission validation
  client/     async Jira REST client
  tools/      MCP tool definitions and handlers
  cli/        Click CLI entry point
"""

__version__ = "0.4.0"
__all__ = ["__version__"]
