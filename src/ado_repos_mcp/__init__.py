"""Azure DevOps repositories MCP server.

Read-only access to repositories, branches, pull requests, comment threads and commits,
plus a single operation to post pull request comments.
"""

__version__ = "1.0.0"
