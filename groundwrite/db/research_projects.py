"""Database operations for research project versions, citations and status."""

import asyncio
from typing import Any

from groundwrite.core.logging import get_logger
from groundwrite.db.supabase_client import get_supabase

logger = get_logger(__name__)


def add_project_version(project_id: str, content: str, version_number: int) -> dict[str, Any]:
    """
    Insert a content version for a project.

    Returns:
        Inserted version row

    Raises:
        ValueError: If the insert returns no rows
    """
    supabase = get_supabase()
    try:
        response = (
            supabase.table("research_project_versions")
            .insert({"project_id": project_id, "version": version_number, "content": content})
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to add version {version_number} for project {project_id}: {e}")
        raise

    if not response.data:
        raise ValueError("No data returned from add_project_version")

    logger.info(f"Saved version {version_number} for project {project_id}")
    return response.data[0]


def add_project_citation(
    project_id: str,
    version: int,
    paper_id: str,
    citation_text: str,
    position_start: int | None = None,
    position_end: int | None = None,
) -> dict[str, Any]:
    supabase = get_supabase()
    response = (
        supabase.table("project_citations")
        .insert(
            {
                "project_id": project_id,
                "version": version,
                "paper_id": paper_id,
                "citation_text": citation_text,
                "position_start": position_start,
                "position_end": position_end,
            }
        )
        .execute()
    )
    if not response.data:
        raise ValueError(f"No data returned from add_project_citation for paper {paper_id}")
    return response.data[0]


def update_project_status(project_id: str, status: str) -> None:
    supabase = get_supabase()
    try:
        supabase.table("research_projects").update({"status": status}).eq("id", project_id).execute()
    except Exception as e:
        logger.error(f"Failed to set status '{status}' for project {project_id}: {e}")
        raise
    logger.info(f"Project {project_id} status -> {status}")


class SupabaseProjectPersistence:
    """PersistenceAdapter writing to the research project tables."""

    async def add_version(self, project_id: str, content: str, version_number: int) -> dict[str, Any]:
        return await asyncio.to_thread(add_project_version, project_id, content, version_number)

    async def add_citation(
        self,
        project_id: str,
        version: int,
        paper_id: str,
        token: str,
        position_start: int | None = None,
        position_end: int | None = None,
    ) -> None:
        await asyncio.to_thread(
            add_project_citation, project_id, version, paper_id, token, position_start, position_end
        )

    async def update_status(self, project_id: str, status: str) -> None:
        await asyncio.to_thread(update_project_status, project_id, status)
