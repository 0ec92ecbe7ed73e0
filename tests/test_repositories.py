from types import SimpleNamespace

import pytest

from entities.compliance import ComplianceStatus
from repositories.control_repository import ControlCatalogRepository
from repositories.document_repository import DocumentRepository
from repositories.evaluation_repository import EvaluationRepository

MAX_ROWS = 10


class CappedQuery:
    """Minimal PostgREST query builder that truncates every response at max_rows."""

    def __init__(self, client, rows):
        self.client = client
        self.rows = rows
        self.filters = []
        self.orders = []
        self.window = None

    def select(self, *_):
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        allowed = set(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def range(self, start, end):
        self.window = (start, end)
        return self

    def execute(self):
        rows = [row for row in self.rows if all(f(row) for f in self.filters)]
        for column, desc in reversed(self.orders):
            rows.sort(key=lambda row: row[column], reverse=desc)
        if self.window:
            rows = rows[self.window[0]:self.window[1] + 1]
        self.client.calls += 1
        return SimpleNamespace(data=rows[:self.client.max_rows])


class CappedSupabase:
    def __init__(self, tables, max_rows=MAX_ROWS):
        self.tables = tables
        self.max_rows = max_rows
        self.calls = 0
        self.rpc_calls = []

    def table(self, name):
        return CappedQuery(self, self.tables[name])

    def rpc(self, name, params):
        assert name == "latest_evaluations"
        self.rpc_calls.append(params)
        newest = {}
        for row in sorted(self.tables["evidence_evaluations"], key=lambda r: r["created_at"], reverse=True):
            if row["control_id"] in params["p_codes"]:
                newest.setdefault(row["control_id"], row)
        rows = list(newest.values())[:self.max_rows]
        return SimpleNamespace(execute=lambda: SimpleNamespace(data=rows))


def evaluation_row(index, control_id, status, day):
    return {
        "id": f"e{index:03d}",
        "conversation_id": "conv-1",
        "control_id": control_id,
        "status": status,
        "created_at": f"2026-01-{day:02d}T00:00:00+00:00",
    }


async def test_documents_beyond_the_row_cap_are_returned():
    rows = [
        {"id": f"d{i:03d}", "conversation_id": "conv-1", "kind": "CUSTOMER",
         "match_control_id": "A.5.15", "match_status": "COMPLIANT"}
        for i in range(25)
    ]
    supabase = CappedSupabase({"documents": rows})
    repo = DocumentRepository(supabase, "documents", "document_chunks")
    repo.page_size = MAX_ROWS

    documents = await repo.list_by_match_controls(["A.5.15"])

    assert len(documents) == 25
    assert len({d.id for d in documents}) == 25
    assert supabase.calls == 3


async def test_latest_evaluation_survives_many_newer_rows():
    rows = [evaluation_row(i, "A", "PARTIAL", 10 + i % 15) for i in range(30)]
    rows.append(evaluation_row(99, "B", "NOT_COMPLIANT", 1))
    supabase = CappedSupabase({"evidence_evaluations": rows})
    repo = EvaluationRepository(supabase, batch_size=2)

    latest = await repo.latest_for_controls(["A", "B", "C", "D", "E"])

    assert len(supabase.rpc_calls) == 3
    assert supabase.rpc_calls[0] == {"p_codes": ["A", "B"]}
    assert latest["B"].status == ComplianceStatus.NOT_COMPLIANT
    assert latest["A"].created_at.day == 24
    assert set(latest) == {"A", "B"}


async def test_conversation_evaluations_are_paged():
    rows = [evaluation_row(i, f"C{i}", "COMPLIANT", 1 + i % 28) for i in range(23)]
    supabase = CappedSupabase({"evidence_evaluations": rows})
    repo = EvaluationRepository(supabase)
    repo.page_size = MAX_ROWS

    evaluations = await repo.list_by_conversations(["conv-1"])

    assert len(evaluations) == 23
    assert evaluations[0].created_at >= evaluations[-1].created_at


@pytest.fixture
def control_rows():
    rows = [
        {"id": f"c{i}", "control_code": f"X.{i:02d}", "title": f"Control {i}", "status": "enabled", "sort_order": i}
        for i in range(12)
    ]
    rows.append({
        "id": "c-special", "control_code": "A.5.18", "title": "Access rights (privileged) 100% reviewed",
        "status": "enabled", "sort_order": 50, "topic": {"title": "Identity"},
    })
    return rows


async def test_list_controls_pages_through_catalog(control_rows):
    repo = ControlCatalogRepository(CappedSupabase({"controls": control_rows}))
    repo.page_size = MAX_ROWS

    controls = await repo.list_controls()

    assert len(controls) == 13
    assert controls[-1].control_code == "A.5.18"
    assert controls[-1].topic_title == "Identity"


@pytest.mark.parametrize("query,expected", [
    ("(privileged) 100%", ["A.5.18"]),
    ("%", ["A.5.18"]),
    ("IDENTITY", ["A.5.18"]),
    ("control 1", ["X.01", "X.10", "X.11"]),
    ("a,b)", []),
])
async def test_list_controls_matches_query_literally(control_rows, query, expected):
    repo = ControlCatalogRepository(CappedSupabase({"controls": control_rows}))

    controls = await repo.list_controls(query=query)

    assert [c.control_code for c in controls] == expected
