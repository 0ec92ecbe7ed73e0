"""
Control catalog repository: controls, topics and topic mappings.
"""

from typing import List, Optional, Sequence

from repositories.base import SupabaseRepository, chunked
from entities.control import ControlDefinition, ControlSummary, ControlTopic, TopicRelationship
from common.exceptions import DatabaseException
from common.logging import get_logger, log_business_event

logger = get_logger("control_repository")


class ControlCatalogRepository(SupabaseRepository[ControlDefinition]):
    """Read access to the control catalog plus primary-topic self-healing."""

    def __init__(
        self,
        supabase_client,
        table_name: str = "controls",
        topics_table: str = "control_topics",
        mappings_table: str = "control_topic_mappings",
    ):
        super().__init__(supabase_client, table_name)
        self.topics_table = topics_table
        self.mappings_table = mappings_table

    @property
    def _select_with_topic(self) -> str:
        return f"*, topic:{self.topics_table}(title)"

    async def get_by_id(self, control_id: str) -> Optional[ControlDefinition]:
        try:
            res = self.supabase.table(self.table_name).select(self._select_with_topic).eq("id", control_id).execute()
        except Exception as e:
            raise self._database_error("get", e, id=control_id)
        return ControlDefinition.from_dict(res.data[0]) if res.data else None

    async def get_by_code(self, control_code: str) -> Optional[ControlDefinition]:
        try:
            res = (
                self.supabase.table(self.table_name)
                .select(self._select_with_topic)
                .eq("control_code", control_code)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise self._database_error("get_by_code", e, control_code=control_code)
        return ControlDefinition.from_dict(res.data[0]) if res.data else None

    async def list_by_codes(self, control_codes: Sequence[str]) -> List[ControlDefinition]:
        codes = sorted({c for c in control_codes if c})
        controls: List[ControlDefinition] = []
        for batch in chunked(codes, self.batch_size):
            try:
                res = (
                    self.supabase.table(self.table_name)
                    .select(self._select_with_topic)
                    .in_("control_code", batch)
                    .execute()
                )
            except Exception as e:
                raise self._database_error("list_by_codes", e, batch_size=len(batch))
            controls.extend(ControlDefinition.from_dict(row) for row in res.data or [])
        return controls

    async def search_controls(
        self,
        tokens: Sequence[str],
        active_only: bool = True,
        limit: int = 50,
    ) -> List[ControlSummary]:
        """Controls whose code/title/description/topic title contains any token."""
        if not tokens:
            return []
        try:
            res = self.supabase.rpc(
                "search_controls",
                {"p_tokens": list(tokens), "p_active_only": active_only, "p_limit": limit},
            ).execute()
        except Exception as e:
            raise self._database_error("search_controls", e, token_count=len(tokens))
        return [ControlSummary(**row) for row in res.data or []]

    async def list_controls(
        self,
        topic_id: Optional[str] = None,
        query: Optional[str] = None,
        active_only: bool = True,
    ) -> List[ControlDefinition]:
        """
        Catalog controls in display order. `query` is matched as a literal,
        case-insensitive substring of code, title, description or topic title.
        """
        def build_query():
            q = self.supabase.table(self.table_name).select(self._select_with_topic)
            if active_only:
                q = q.eq("status", "enabled")
            if topic_id:
                q = q.eq("topic_id", topic_id)
            return q.order("sort_order").order("control_code")

        rows = self._fetch_pages(build_query, "list", topic_id=topic_id)
        controls = [ControlDefinition.from_dict(row) for row in rows]
        term = (query or "").strip().lower()
        if term:
            controls = [c for c in controls if term in c.searchable_text()]
        return controls

    async def list_topics(self, active_only: bool = True) -> List[ControlTopic]:
        try:
            q = self.supabase.table(self.topics_table).select("*")
            if active_only:
                q = q.eq("status", "enabled")
            res = q.order("priority").order("title").execute()
        except Exception as e:
            raise self._database_error("list_topics", e)
        return [ControlTopic(**row) for row in res.data or []]

    async def _has_primary_topic(self, control_id: str) -> bool:
        res = (
            self.supabase.table(self.mappings_table)
            .select("id")
            .eq("control_id", control_id)
            .eq("relationship_type", TopicRelationship.PRIMARY.value)
            .limit(1)
            .execute()
        )
        return bool(res.data)

    async def ensure_primary_topic(self, control: ControlDefinition) -> bool:
        """
        Recreate a missing PRIMARY topic mapping from the control's topic_id.

        Returns True when a mapping was created. A failed insert is retried
        once by re-reading, since a concurrent request may have healed it.
        """
        if not control.topic_id:
            return False
        try:
            if await self._has_primary_topic(control.id):
                return False
        except Exception as e:
            raise self._database_error("ensure_primary_topic", e, control_id=control.id)

        logger.warning(f"Control {control.control_code} has no PRIMARY topic mapping; recreating")
        try:
            self.supabase.table(self.mappings_table).upsert(
                {
                    "control_id": control.id,
                    "topic_id": control.topic_id,
                    "relationship_type": TopicRelationship.PRIMARY.value,
                },
                on_conflict="control_id,topic_id",
            ).execute()
        except Exception as e:
            logger.warning(f"Primary topic insert failed for {control.control_code}, re-checking: {e}")
            try:
                healed = await self._has_primary_topic(control.id)
            except Exception as retry_error:
                raise self._database_error("ensure_primary_topic", retry_error, control_id=control.id)
            if not healed:
                raise DatabaseException(
                    detail=f"Could not restore primary topic for control {control.control_code}",
                    operation="ensure_primary_topic",
                    context={"control_id": control.id, "topic_id": control.topic_id},
                )
            return False

        log_business_event(
            event_type="CONTROL_PRIMARY_TOPIC_RESTORED",
            entity_type="control",
            entity_id=control.id,
            action="self_heal",
            details={"control_code": control.control_code, "topic_id": control.topic_id},
        )
        return True
