"""Resource-specific GitLab API wrappers (merge requests, approvals, reviewers)."""
