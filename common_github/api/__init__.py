"""Resource-specific GitHub API wrappers.

Each module in this package owns:
- the API calls for one resource (via GitHubAPIClient's RestTransport)
- the paging idiom for that resource
- the normalization of its payload into plain dicts / small dataclasses
"""
