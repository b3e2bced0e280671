"""SQLite results store.

This module provides the SQLAlchemy models and the store every simulation
run writes into. One stage execution is written per transaction, so
readers only ever see complete executions. Rows are never updated.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    insert,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from prodsim.domain.timewindow import TimeWindow
from prodsim.optimization.snapshot import ResultSnapshot

logger = logging.getLogger(__name__)

STORE_FILENAME = "results.sqlite"

STATUS_SOLVED = "solved"
STATUS_FAILED = "failed"

KIND_VARIABLE = "variable"
KIND_PARAMETER = "parameter"
KIND_DUAL = "dual"
RESULT_KINDS = (KIND_VARIABLE, KIND_PARAMETER, KIND_DUAL)

# Base class for models
Base = declarative_base()


class SimulationRunModel(Base):
    """SQLAlchemy model for one simulation run."""

    __tablename__ = "simulation_runs"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    run_number = Column(Integer, nullable=False)
    status = Column(String(50), nullable=False, default="built")
    steps = Column(Integer, nullable=False)
    initial_time = Column(DateTime, nullable=False)
    step_length_seconds = Column(Float, nullable=False)
    stages = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)


class StageExecutionModel(Base):
    """SQLAlchemy model for one stage execution (solved or failed)."""

    __tablename__ = "stage_executions"

    id = Column(Integer, primary_key=True)
    run_id = Column(Integer, ForeignKey("simulation_runs.id"), nullable=False)
    stage = Column(String(200), nullable=False, index=True)
    step = Column(Integer, nullable=False)
    execution = Column(Integer, nullable=False)
    window_start = Column(DateTime, nullable=False)
    realized_end = Column(DateTime, nullable=False)
    resolution_seconds = Column(Float, nullable=False)
    horizon = Column(Integer, nullable=False)
    status = Column(String(50), nullable=False)
    termination_condition = Column(String(100), nullable=True)
    objective_value = Column(Float, nullable=True)
    solve_time_seconds = Column(Float, nullable=True)
    error_message = Column(Text, nullable=True)
    written_at = Column(DateTime, default=datetime.utcnow)


class ResultValueModel(Base):
    """SQLAlchemy model for a single result value."""

    __tablename__ = "result_values"

    id = Column(Integer, primary_key=True)
    execution_id = Column(
        Integer, ForeignKey("stage_executions.id"), nullable=False, index=True
    )
    kind = Column(String(20), nullable=False)
    key = Column(String(200), nullable=False, index=True)
    component = Column(String(200), nullable=False)
    position = Column(Integer, nullable=False)
    timestamp = Column(DateTime, nullable=False)
    value = Column(Float, nullable=False)


def _frame_rows(kind: str, frames: dict[str, pd.DataFrame]) -> Iterator[dict[str, Any]]:
    for key, frame in frames.items():
        for position, component in enumerate(frame.columns):
            for timestamp, value in frame[component].items():
                yield {
                    "kind": kind,
                    "key": key,
                    "component": str(component),
                    "position": position,
                    "timestamp": pd.Timestamp(timestamp).to_pydatetime(),
                    "value": float(value),
                }


class ResultsStore:
    """Append-only store of stage executions in one SQLite file."""

    def __init__(self, path: str | Path) -> None:
        """Open (and create if needed) the store at ``path``.

        Args:
            path: SQLite file, or a run directory holding ``results.sqlite``.
        """
        path = Path(path)
        if path.is_dir():
            path = path / STORE_FILENAME
        self.path = path
        self.engine = create_engine(f"sqlite:///{path}")
        self._sessions = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        Base.metadata.create_all(bind=self.engine)

    def __repr__(self) -> str:
        return f"ResultsStore(path={str(self.path)!r})"

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on error."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()

    # =================================================================
    # Writes
    # =================================================================

    def start_run(
        self,
        name: str,
        run_number: int,
        steps: int,
        initial_time: datetime,
        step_length_seconds: float,
        stages: list[dict[str, Any]],
    ) -> int:
        """Record run metadata and return the run id."""
        with self.session() as session:
            run = SimulationRunModel(
                name=name,
                run_number=run_number,
                steps=steps,
                initial_time=initial_time,
                step_length_seconds=step_length_seconds,
                stages=stages,
            )
            session.add(run)
            session.flush()
            return int(run.id)

    def finish_run(self, run_id: int, status: str) -> None:
        with self.session() as session:
            run = session.get(SimulationRunModel, run_id)
            if run is None:
                raise KeyError(f"Run {run_id} not found in {self.path}")
            run.status = status
            run.completed_at = datetime.utcnow()

    def _execution(
        self,
        run_id: int,
        stage: str,
        step: int,
        execution: int,
        window: TimeWindow,
        **fields: Any,
    ) -> StageExecutionModel:
        realized = min(window.horizon, window.interval_periods)
        return StageExecutionModel(
            run_id=run_id,
            stage=stage,
            step=step,
            execution=execution,
            window_start=window.start,
            realized_end=window.start + realized * window.resolution,
            resolution_seconds=window.resolution.total_seconds(),
            horizon=window.horizon,
            **fields,
        )

    def write_snapshot(
        self, run_id: int, step: int, execution: int, snapshot: ResultSnapshot
    ) -> int:
        """Write a solved execution and all its values in one transaction."""
        with self.session() as session:
            record = self._execution(
                run_id,
                snapshot.stage,
                step,
                execution,
                snapshot.window,
                status=STATUS_SOLVED,
                termination_condition=snapshot.termination_condition,
                objective_value=snapshot.objective_value,
                solve_time_seconds=snapshot.solve_time_seconds,
            )
            session.add(record)
            session.flush()
            rows = []
            for kind, frames in (
                (KIND_VARIABLE, snapshot.variables),
                (KIND_PARAMETER, snapshot.parameters),
                (KIND_DUAL, snapshot.duals),
            ):
                for row in _frame_rows(kind, frames):
                    row["execution_id"] = record.id
                    rows.append(row)
            if rows:
                session.execute(insert(ResultValueModel), rows)
            execution_id = int(record.id)
        logger.debug(
            "Stored %s step %d execution %d (%d values)",
            snapshot.stage,
            step,
            execution,
            len(rows),
        )
        return execution_id

    def write_failure(
        self,
        run_id: int,
        stage: str,
        step: int,
        execution: int,
        window: TimeWindow,
        error: Exception,
    ) -> int:
        """Record a failed execution marker."""
        with self.session() as session:
            record = self._execution(
                run_id,
                stage,
                step,
                execution,
                window,
                status=STATUS_FAILED,
                termination_condition=getattr(error, "termination_condition", None),
                error_message=f"{type(error).__name__}: {error}",
            )
            session.add(record)
            session.flush()
            return int(record.id)

    # =================================================================
    # Reads
    # =================================================================

    def latest_run(self, name: str | None = None) -> SimulationRunModel | None:
        with self.session() as session:
            query = select(SimulationRunModel).order_by(SimulationRunModel.id.desc())
            if name is not None:
                query = query.where(SimulationRunModel.name == name)
            run = session.execute(query).scalars().first()
            if run is not None:
                session.expunge(run)
            return run

    def executions(self, run_id: int, stage: str | None = None) -> pd.DataFrame:
        """Execution records of a run, in write order."""
        columns = [
            "id",
            "stage",
            "step",
            "execution",
            "window_start",
            "realized_end",
            "resolution_seconds",
            "horizon",
            "status",
            "termination_condition",
            "objective_value",
            "solve_time_seconds",
            "error_message",
        ]
        query = select(*(getattr(StageExecutionModel, c) for c in columns)).where(
            StageExecutionModel.run_id == run_id
        )
        if stage is not None:
            query = query.where(StageExecutionModel.stage == stage)
        query = query.order_by(StageExecutionModel.id)
        with self.session() as session:
            rows = session.execute(query).all()
        return pd.DataFrame([tuple(r) for r in rows], columns=columns)

    def list_keys(self, run_id: int, stage: str, kind: str) -> list[str]:
        query = (
            select(ResultValueModel.key)
            .join(StageExecutionModel)
            .where(
                StageExecutionModel.run_id == run_id,
                StageExecutionModel.stage == stage,
                ResultValueModel.kind == kind,
            )
            .distinct()
            .order_by(ResultValueModel.key)
        )
        with self.session() as session:
            return [row[0] for row in session.execute(query).all()]

    def read_values(
        self, run_id: int, stage: str, kind: str, key: str
    ) -> pd.DataFrame:
        """Long-format values of one identifier across solved executions."""
        columns = [
            "execution_id",
            "window_start",
            "realized_end",
            "component",
            "position",
            "timestamp",
            "value",
        ]
        query = (
            select(
                ResultValueModel.execution_id,
                StageExecutionModel.window_start,
                StageExecutionModel.realized_end,
                ResultValueModel.component,
                ResultValueModel.position,
                ResultValueModel.timestamp,
                ResultValueModel.value,
            )
            .join(StageExecutionModel)
            .where(
                StageExecutionModel.run_id == run_id,
                StageExecutionModel.stage == stage,
                StageExecutionModel.status == STATUS_SOLVED,
                ResultValueModel.kind == kind,
                ResultValueModel.key == key,
            )
            .order_by(ResultValueModel.execution_id, ResultValueModel.id)
        )
        with self.session() as session:
            rows = session.execute(query).all()
        return pd.DataFrame([tuple(r) for r in rows], columns=columns)
