from __future__ import annotations

import time

from mergequeuelab.model import Commit

COMMIT_SPACING_MS = 12_000.0

PREFIXES = (
    "Fix",
    "Feat",
    "Refactor",
    "Chore",
    "Perf",
    "Test",
    "Docs",
    "Style",
    "CI",
    "Build",
)

SUBJECTS = (
    "auth flow",
    "user dashboard",
    "rate limiting",
    "DB migrations",
    "search indexing",
    "file uploads",
    "notifications",
    "cache layer",
    "session mgmt",
    "error handling",
    "input validation",
    "logging",
    "webhook delivery",
    "payment flow",
    "email templates",
    "dark mode",
    "accessibility",
    "mobile layout",
    "type safety",
    "test coverage",
    "CI pipeline",
    "Docker config",
    "env variables",
    "SSL renewal",
    "rate limiter",
    "retry logic",
    "queue jobs",
    "data export",
    "user roles",
    "audit log",
    "health checks",
    "metrics endpoint",
    "GraphQL schema",
    "REST API",
    "WebSocket handler",
    "queue worker",
    "image optimize",
    "lazy loading",
    "code splitting",
    "tree shaking",
    "memory leak",
    "race condition",
    "deadlock fix",
    "conn pooling",
    "password hash",
    "token refresh",
    "CORS policy",
    "CSP headers",
    "i18n support",
    "timezone fix",
    "date formatting",
    "currency fmt",
    "pagination",
    "sorting logic",
    "filter engine",
    "search parser",
    "OAuth2 flow",
    "SSO integration",
    "2FA setup",
    "key rotation",
    "S3 uploads",
    "CDN config",
    "DNS records",
    "load balancer",
    "cron jobs",
    "event bus",
    "pub/sub layer",
    "state machine",
)


def commit_name(i: int) -> str:
    # Subjects are strided so they do not cycle in lockstep with the prefixes.
    prefix = PREFIXES[i % len(PREFIXES)]
    subject = SUBJECTS[(i * 7 + 3) % len(SUBJECTS)]
    return f"{prefix}: {subject}"


def generate_commits(
    count: int, *, now_ms: float | None = None
) -> tuple[dict[str, Commit], list[str]]:
    """Create `count` idle commits in queue order, oldest first."""

    if now_ms is None:
        now_ms = time.time() * 1000.0

    commits: dict[str, Commit] = {}
    queue: list[str] = []
    for i in range(count):
        cid = f"c-{i}"
        commits[cid] = Commit(
            id=cid,
            name=commit_name(i),
            created_at_ms=float(now_ms) - (count - i) * COMMIT_SPACING_MS,
        )
        queue.append(cid)
    return commits, queue
