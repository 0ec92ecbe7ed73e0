"""
EvidenceEvaluation repository implementation using Supabase.
"""

from typing import Dict, List, Optional, Sequence

from repositories.base import SupabaseRepository, chunked
from entities.evaluation import EvidenceEvaluation, EvaluationCreate
from common.logging import get_logger

logger = get_logger("evaluation_repository")


class EvaluationRepository(SupabaseRepository[EvidenceEvaluation]):
    """Append-only store of LLM evidence judgements."""

    def __init__(self, supabase_client, table_name: str = "evidence_evaluations", batch_size: int = 900):
        super().__init__(supabase_client, table_name, batch_size)

    async def create(self, evaluation_create: EvaluationCreate) -> EvidenceEvaluation:
        data = evaluation_create.model_dump(mode="json")
        try:
            res = self.supabase.table(self.table_name).insert(data).execute()
        except Exception as e:
            raise self._database_error(
                "create", e,
                conversation_id=evaluation_create.conversation_id,
                control_id=evaluation_create.control_id,
            )
        created = EvidenceEvaluation.from_dict(res.data[0])
        logger.info(f"Recorded evaluation {created.id} for control {created.control_id}: {created.status.value}")
        return created

    async def get_by_id(self, evaluation_id: str) -> Optional[EvidenceEvaluation]:
        try:
            res = self.supabase.table(self.table_name).select("*").eq("id", evaluation_id).execute()
        except Exception as e:
            raise self._database_error("get", e, id=evaluation_id)
        return EvidenceEvaluation.from_dict(res.data[0]) if res.data else None

    async def latest_for_controls(self, control_codes: Sequence[str]) -> Dict[str, EvidenceEvaluation]:
        """
        Most recent evaluation per control code across all conversations.

        The latest_evaluations RPC returns at most one row per code, so a batch
        never exceeds the response row cap.
        """
        codes = sorted({c for c in control_codes if c})
        latest: Dict[str, EvidenceEvaluation] = {}
        for batch in chunked(codes, self.batch_size):
            try:
                res = self.supabase.rpc("latest_evaluations", {"p_codes": batch}).execute()
            except Exception as e:
                raise self._database_error("latest_for_controls", e, batch_size=len(batch))
            for row in res.data or []:
                evaluation = EvidenceEvaluation.from_dict(row)
                latest[evaluation.control_id] = evaluation
        return latest

    async def list_by_conversations(self, conversation_ids: Sequence[str]) -> List[EvidenceEvaluation]:
        """Evaluations for the given conversations, newest first."""
        ids = sorted({c for c in conversation_ids if c})
        evaluations: List[EvidenceEvaluation] = []
        for batch in chunked(ids, self.batch_size):
            rows = self._fetch_pages(
                lambda: (
                    self.supabase.table(self.table_name)
                    .select("*")
                    .in_("conversation_id", batch)
                    .order("created_at", desc=True)
                    .order("id")
                ),
                "list_by_conversations",
                batch_size=len(batch),
            )
            evaluations.extend(EvidenceEvaluation.from_dict(row) for row in rows)
        evaluations.sort(key=lambda ev: ev.created_at.timestamp() if ev.created_at else 0.0, reverse=True)
        return evaluations
