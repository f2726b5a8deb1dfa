"""Chat context assembly: what is already known about the veteran."""

import asyncio
from dataclasses import dataclass, field
from typing import Any

from app.core.logging import get_logger
from app.db.gateway import Operation, PersistenceGateway

logger = get_logger(__name__)


@dataclass
class FilingSnapshot:
    """Current persisted filing data for one user."""

    personal_info: dict[str, Any] | None = None
    military_service: dict[str, Any] | None = None
    va_disability: dict[str, Any] | None = None
    claims: list[dict[str, Any]] = field(default_factory=list)
    documents: list[dict[str, Any]] = field(default_factory=list)

    @property
    def claim_count(self) -> int:
        return len(self.claims)


async def load_filing_snapshot(
    gateway: PersistenceGateway,
    user_id: str,
    include_documents: bool = False,
) -> FilingSnapshot:
    """Read the info tables and claims for a user in parallel.

    Always reads through to the store: the snapshot must reflect tool calls
    made earlier in the same chat loop.
    """
    reads = [
        gateway.arun(Operation.GET_PERSONAL_INFO, user_id),
        gateway.arun(Operation.GET_MILITARY_SERVICE, user_id),
        gateway.arun(Operation.GET_VA_DISABILITY_INFO, user_id),
        gateway.arun(Operation.GET_DISABILITY_CLAIMS, user_id),
    ]
    if include_documents:
        reads.append(gateway.arun(Operation.GET_DOCUMENTS, user_id))

    results = await asyncio.gather(*reads)

    return FilingSnapshot(
        personal_info=results[0],
        military_service=results[1],
        va_disability=results[2],
        claims=results[3] or [],
        documents=(results[4] or []) if include_documents else [],
    )


def render_context_summary(snapshot: FilingSnapshot) -> str:
    """Render the known-data block appended to the system prompt.

    Returns an empty string when nothing has been collected yet.
    """
    lines: list[str] = []

    personal = snapshot.personal_info
    if personal:
        name = " ".join(
            part for part in (personal.get("first_name"), personal.get("last_name")) if part
        )
        lines.append(f"User's Personal Info: {name or 'Not provided'}")

    service = snapshot.military_service
    if service:
        branch = service.get("branch") or "Not provided"
        retired = service.get("retirement_date") or "date not provided"
        lines.append(f"Military Service: {branch}, Retired {retired}")

    va = snapshot.va_disability
    if va:
        rating = va.get("current_va_rating")
        lines.append(f"VA Rating: {rating}%" if rating is not None else "VA Rating: Not provided")

    if snapshot.claim_count > 0:
        lines.append(f"Current Claims: {snapshot.claim_count} disability claims on file")

    if not lines:
        return ""
    return "## Current User Context\n" + "\n".join(lines)
