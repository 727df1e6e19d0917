"""A point-in-time summary of Tests and Resources."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..model.models import Crd, Resource, TaskState, Test


class StatusRow(BaseModel):
    name: str
    kind: str
    state: str
    passed: int | None = None
    failed: int | None = None
    skipped: int | None = None


def _rows(obj: Crd) -> list[StatusRow]:
    if isinstance(obj, Resource):
        creation = obj.creation_task_state
        destruction = obj.destruction_task_state
        state = creation if destruction == TaskState.UNKNOWN else destruction
        return [StatusRow(name=obj.name, kind="Resource", state=state.value)]

    state = obj.user_state().value
    results = obj.agent_status.results
    if not results:
        return [StatusRow(name=obj.name, kind="Test", state=state)]
    # One row per attempt; reruns are named after their attempt number.
    return [
        StatusRow(
            name=obj.name if attempt == 0 else f"{obj.name}-retry-{attempt}",
            kind="Test",
            state=state,
            passed=result.num_passed,
            failed=result.num_failed,
            skipped=result.num_skipped,
        )
        for attempt, result in enumerate(results)
    ]


class StatusSnapshot(BaseModel):
    """Overall progress of a set of objects plus one row per object.

    `finished` is False while any Test or Resource task may still be running;
    `passed` is True only if everything finished without error.
    """

    finished: bool = True
    passed: bool = True
    failed_tests: list[str] = Field(default_factory=list)
    rows: list[StatusRow] = Field(default_factory=list)

    @classmethod
    def from_objects(cls, objects: list[Crd]) -> StatusSnapshot:
        finished = True
        passed = True
        failed_tests: list[str] = []
        for obj in objects:
            if isinstance(obj, Test):
                task_state = obj.agent_status.task_state
                if task_state in (TaskState.UNKNOWN, TaskState.RUNNING):
                    finished = passed = False
                elif task_state == TaskState.ERROR:
                    passed = False
                    failed_tests.append(obj.name)
            else:
                creation = obj.creation_task_state
                if creation in (TaskState.UNKNOWN, TaskState.RUNNING):
                    finished = passed = False
                elif creation == TaskState.ERROR:
                    passed = False
                if obj.destruction_task_state == TaskState.RUNNING:
                    finished = False

        rows = [row for obj in sorted(objects, key=lambda o: o.name) for row in _rows(obj)]
        return cls(finished=finished, passed=passed, failed_tests=failed_tests, rows=rows)

    def to_table(self) -> str:
        """Render the rows as a plain text table."""
        headers = ("NAME", "TYPE", "STATE", "PASSED", "FAILED", "SKIPPED")
        lines = [
            (
                row.name,
                row.kind,
                row.state,
                *("" if n is None else str(n) for n in (row.passed, row.failed, row.skipped)),
            )
            for row in self.rows
        ]
        widths = [max(len(cell) for cell in column) for column in zip(headers, *lines)]
        return "\n".join(
            "  ".join(cell.ljust(width) for cell, width in zip(line, widths)).rstrip()
            for line in (headers, *lines)
        )


__all__ = ["StatusRow", "StatusSnapshot"]
