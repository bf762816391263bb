"""Resource-specific Bitbucket Cloud API wrappers (pull requests, repositories)."""
