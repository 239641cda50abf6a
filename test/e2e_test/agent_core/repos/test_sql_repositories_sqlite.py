"""End-to-end tests for the SQL repositories on SQLite.

The database is a temporary file rather than ``:memory:`` so that concurrent
sessions see each other's commits the way they would on Postgres.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from agent_harness.agent_core.errors import DefinitionValidationError
from agent_harness.agent_core.repos.sql import (
    SqlRepoBundle,
    build_sql_repos,
    create_all,
    create_engine,
    create_sessionmaker,
)
from agent_harness.agent_core.schemas.definition import ExecutionConstraints, TriggerType
from agent_harness.agent_core.schemas.execution import (
    ExecutionRecord,
    ExecutionResult,
    ExecutionStatus,
    Step,
    StepType,
    TokenUsage,
)


@pytest.fixture
async def db_engine(tmp_path):
    """Create a file-backed SQLite database for testing."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'harness.db'}")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def repos(db_engine) -> SqlRepoBundle:
    return build_sql_repos(
        session_factory=create_sessionmaker(db_engine),
        default_constraints=ExecutionConstraints(max_steps=6, max_execution_time_ms=30_000),
    )


def _step(index: int, content: str = "x") -> Step:
    return Step(index=index, type=StepType.text, content=content, usage=TokenUsage.of(1, 1))


class TestSqlDefinitionRepository:
    @pytest.mark.asyncio
    async def test_upsert_and_get(self, repos: SqlRepoBundle) -> None:
        created = await repos.definitions.upsert(
            {
                "id": "lead-router",
                "name": "Lead router",
                "trigger": {"type": "event", "eventName": "lead.created"},
                "conditions": [
                    {"conditions": []},
                    {"conditions": [{"property": "market", "operator": "in", "value": ["US", "CA"]}]},
                ],
            }
        )

        loaded = await repos.definitions.get("lead-router")

        assert loaded == created
        assert loaded.constraints.max_steps == 6
        assert loaded.trigger.type == TriggerType.event
        assert len(loaded.conditions) == 1
        assert await repos.definitions.get("missing") is None

    @pytest.mark.asyncio
    async def test_partial_update_merges(self, repos: SqlRepoBundle) -> None:
        await repos.definitions.upsert({"id": "d1", "name": "Digest", "tools": ["search"]})

        updated = await repos.definitions.upsert({"id": "d1", "constraints": {"maxSteps": 2}, "isActive": False})

        assert updated.name == "Digest"
        assert updated.tools == ["search"]
        assert updated.constraints.max_steps == 2
        assert updated.constraints.max_execution_time_ms == 30_000
        assert (await repos.definitions.get("d1")).is_active is False

    @pytest.mark.asyncio
    async def test_invalid_update_is_rejected(self, repos: SqlRepoBundle) -> None:
        await repos.definitions.upsert({"id": "d1", "name": "Digest"})

        with pytest.raises(DefinitionValidationError):
            await repos.definitions.upsert({"id": "d1", "trigger": {"type": "schedule"}})

        assert (await repos.definitions.get("d1")).trigger.type == TriggerType.manual

    @pytest.mark.asyncio
    async def test_list_by_org(self, repos: SqlRepoBundle) -> None:
        await repos.definitions.upsert({"id": "global", "name": "Global"})
        await repos.definitions.upsert({"id": "mine", "name": "Mine", "orgId": "org-1"})
        await repos.definitions.upsert({"id": "theirs", "name": "Theirs", "orgId": "org-2"})
        await repos.definitions.upsert({"id": "off", "name": "Off", "isActive": False})

        assert {d.id for d in await repos.definitions.list(org_id="org-1")} == {"global", "mine"}
        assert {d.id for d in await repos.definitions.list(active_only=False)} == {"global", "mine", "theirs", "off"}


class TestSqlExecutionRepository:
    @pytest.mark.asyncio
    async def test_create_append_finalize(self, repos: SqlRepoBundle) -> None:
        record = ExecutionRecord(
            definition_id="d1",
            org_id="org-1",
            subject_id="s1",
            trigger_type=TriggerType.event,
            input={"market": "US"},
            model="fake-model",
        )
        execution_id = await repos.executions.create(record)
        await repos.executions.append_step(execution_id, _step(0, "hello"))

        running = await repos.executions.get(execution_id)
        assert running.status == ExecutionStatus.running
        assert [s.content for s in running.steps] == ["hello"]
        assert running.started_at.tzinfo is not None

        await repos.executions.finalize(
            execution_id,
            ExecutionResult(
                execution_id=execution_id,
                status=ExecutionStatus.escalated,
                summary="waiting",
                steps=[_step(0, "hello")],
                usage=TokenUsage.of(1, 1),
                duration_ms=12,
                pending_action={"tool_name": "sendEmail", "tool_call_id": "c1", "input": {}},
            ),
        )
        done = await repos.executions.get(execution_id)

        assert done.status == ExecutionStatus.escalated
        assert done.output["pending_action"]["tool_name"] == "sendEmail"
        assert done.usage.total_tokens == 2
        assert done.duration_ms == 12
        assert done.completed_at is not None
        assert done.trigger_type == TriggerType.event
        assert done.input == {"market": "US"}
        assert len(done.steps) == 1

    @pytest.mark.asyncio
    async def test_finalize_repairs_missing_steps(self, repos: SqlRepoBundle) -> None:
        execution_id = await repos.executions.create(ExecutionRecord(definition_id="d1"))
        await repos.executions.append_step(execution_id, _step(0))
        await repos.executions.append_step(execution_id, _step(2))

        await repos.executions.finalize(
            execution_id,
            ExecutionResult(status=ExecutionStatus.completed, steps=[_step(0), _step(1, "lost"), _step(2)]),
        )

        steps = (await repos.executions.get(execution_id)).steps
        assert [s.index for s in steps] == [0, 1, 2]
        assert steps[1].content == "lost"

    @pytest.mark.asyncio
    async def test_finalize_unknown_execution(self, repos: SqlRepoBundle) -> None:
        with pytest.raises(KeyError):
            await repos.executions.finalize("missing", ExecutionResult(status=ExecutionStatus.failed))

    @pytest.mark.asyncio
    async def test_list_by_definition(self, repos: SqlRepoBundle) -> None:
        t0 = datetime(2026, 5, 1, tzinfo=timezone.utc)
        for i in range(3):
            await repos.executions.create(
                ExecutionRecord(id=f"e{i}", definition_id="d1", started_at=t0 + timedelta(hours=i))
            )
        await repos.executions.append_step("e2", _step(0))

        rows = await repos.executions.list_by_definition("d1", limit=2)

        assert [r.id for r in rows] == ["e2", "e1"]
        assert len(rows[0].steps) == 1
        assert rows[1].steps == []


class TestSqlMemoryRepository:
    @pytest.mark.asyncio
    async def test_upsert_increments_run_count(self, repos: SqlRepoBundle) -> None:
        first = await repos.memory.upsert("d1", "s1", "org-1", {"a": 1})
        second = await repos.memory.upsert("d1", "s1", "org-1", {"b": 2})

        assert first.run_count == 1
        assert second.run_count == 2
        assert second.memory == {"b": 2}
        assert second.last_run_at.tzinfo is not None
        assert (await repos.memory.get("d1", "s1", "org-1")).memory == {"b": 2}

    @pytest.mark.asyncio
    async def test_null_org_is_its_own_key(self, repos: SqlRepoBundle) -> None:
        await repos.memory.upsert("d1", "s1", None, {"scope": "none"})
        await repos.memory.upsert("d1", "s1", None, {"scope": "none-again"})
        await repos.memory.upsert("d1", "s1", "org-1", {"scope": "org"})

        no_org = await repos.memory.get("d1", "s1", None)
        assert no_org.org_id is None
        assert no_org.run_count == 2
        assert no_org.memory == {"scope": "none-again"}
        assert (await repos.memory.get("d1", "s1", "org-1")).run_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_writers_leave_one_consistent_row(self, repos: SqlRepoBundle) -> None:
        results = await asyncio.gather(
            *(repos.memory.upsert("d1", "s1", "org-1", {"writer": i}) for i in range(4))
        )

        stored = await repos.memory.get("d1", "s1", "org-1")
        assert stored.run_count == 4
        assert stored.memory["writer"] in range(4)
        assert sorted(r.run_count for r in results)[-1] == 4
