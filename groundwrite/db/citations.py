"""Database operations for CSL-JSON citations recorded by the citation tool."""

import asyncio
from typing import Any

from groundwrite.core.logging import get_logger
from groundwrite.db.supabase_client import get_supabase

logger = get_logger(__name__)


def upsert_citation(project_id: str, key: str, csl_json: dict[str, Any], link: dict[str, Any]) -> str:
    """
    Upsert a citation by (project, key) and record where it was used.

    Args:
        project_id: Project UUID
        key: Citation key (lowercase DOI or title hash)
        csl_json: CSL-JSON item
        link: Usage details (section, reason, context, paper_id)

    Returns:
        Citation id
    """
    supabase = get_supabase()

    response = supabase.rpc(
        "upsert_citation",
        {"p_project_id": project_id, "p_key": key, "p_data": csl_json},
    ).execute()
    data = response.data
    record = data[0] if isinstance(data, list) and data else data
    if not record:
        raise ValueError(f"No data returned from upsert_citation for key {key}")

    citation_id = str(record["id"])
    supabase.table("citation_links").insert(
        {"project_id": project_id, "citation_id": citation_id, **link}
    ).execute()

    logger.debug(f"Upserted citation {key} -> {citation_id} for project {project_id}")
    return citation_id


class SupabaseCitationStore:
    async def upsert_citation(
        self,
        project_id: str,
        key: str,
        csl_json: dict[str, Any],
        link: dict[str, Any],
    ) -> str:
        return await asyncio.to_thread(upsert_citation, project_id, key, csl_json, link)
