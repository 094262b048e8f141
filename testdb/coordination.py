"""Multi-database transaction coordination.

Three execution modes drive a list of ``DatabaseOperation`` values across the
relational and document engines:

* coordinated: prepare a native transaction on every participant, run every
  operation, then commit all or roll back all;
* saga: run operations directly and undo completed steps with caller
  supplied compensations, newest first, when one fails;
* eventually consistent: run everything concurrently and wait up to an
  advisory timeout.

Per-participant failures are recorded in the returned ``CoordinationResult``.
Only misuse (an unknown participant type, a malformed duration) raises.
Atomicity is no stronger than the weakest participant: document participants
without transaction support commit and roll back as no-ops.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import structlog

from .core_types.errors import UnsupportedParticipantError
from .core_types.models import (
    ActiveTransaction,
    ConsistencyReport,
    CoordinationResult,
    DatabaseOperation,
    DocumentContext,
    EngineKind,
    ParticipantFailure,
    TransactionConfig,
    TransactionState,
    parse_duration,
)
from .utils.retry import retry_async
from .utils.telemetry import active_transactions, record_transaction_outcome, span

logger = structlog.get_logger(__name__)

Compensation = Callable[[Any], Awaitable[Any]]

DEFAULT_CONSISTENCY_TIMEOUT = 30.0


def participant_id(participant: Any) -> str:
    return getattr(participant, "participant_id", None) or repr(participant)


class RelationalParticipant:
    """Native transactions on a leased relational connection."""

    supports_transactions = True

    def __init__(self, handle: Any) -> None:
        self.handle = handle
        self.participant_id = participant_id(handle)

    async def begin(self, config: TransactionConfig, timeout: float | None) -> tuple[Any, Any]:
        connection = await self.handle.lease_connection()
        tx = None
        try:
            tx = connection.transaction(isolation=config.isolation.value)
            await tx.start()
            if timeout:
                await connection.execute(f"SET LOCAL statement_timeout = {int(timeout * 1000)}")
        except BaseException:
            try:
                if tx is not None and connection.is_in_transaction():
                    await tx.rollback()
            finally:
                await self.handle.release_connection(connection)
            raise
        return connection, tx

    async def commit(self, context: Any, native: Any) -> None:
        await native.commit()

    async def rollback(self, context: Any, native: Any) -> None:
        await native.rollback()

    async def release(self, context: Any, native: Any) -> None:
        await self.handle.release_connection(context)


class DocumentParticipant:
    """Sessions on a document engine, transactional only where the deployment allows."""

    def __init__(self, handle: Any) -> None:
        self.handle = handle
        self.participant_id = participant_id(handle)
        self.supports_transactions = bool(getattr(handle, "supports_transactions", False))

    async def begin(self, config: TransactionConfig, timeout: float | None) -> tuple[Any, Any]:
        if not self.supports_transactions:
            return DocumentContext(database=self.handle.database), None

        session = await self.handle.start_session()
        try:
            session.start_transaction(max_commit_time_ms=int(timeout * 1000) if timeout else None)
        except BaseException:
            await session.end_session()
            raise
        return DocumentContext(database=self.handle.database, session=session), session

    async def commit(self, context: Any, native: Any) -> None:
        if native is None:
            logger.debug("Commit is a no-op without transaction support", participant=self.participant_id)
            return
        await native.commit_transaction()

    async def rollback(self, context: Any, native: Any) -> None:
        if native is None:
            logger.debug("Rollback is a no-op without transaction support", participant=self.participant_id)
            return
        await native.abort_transaction()

    async def release(self, context: Any, native: Any) -> None:
        if native is not None:
            await native.end_session()


def resolve_participant(handle: Any) -> RelationalParticipant | DocumentParticipant:
    """Pick the transaction adapter for an engine handle by its capability set.

    Raises:
        UnsupportedParticipantError: If the handle declares no known engine kind
    """
    kind = getattr(handle, "engine_kind", None)
    if kind is EngineKind.RELATIONAL:
        return RelationalParticipant(handle)
    if kind is EngineKind.DOCUMENT:
        return DocumentParticipant(handle)
    raise UnsupportedParticipantError(handle)


class PreparedTransaction:
    """A participant's open native transaction, finalised exactly once."""

    def __init__(
        self,
        participant: RelationalParticipant | DocumentParticipant,
        context: Any,
        native: Any,
        operation: DatabaseOperation,
    ) -> None:
        self.participant = participant
        self.context = context
        self.native = native
        self.operation = operation
        self.state = TransactionState.PREPARED

    @property
    def participant_id(self) -> str:
        return self.participant.participant_id

    def _finalise(self) -> None:
        if self.state is not TransactionState.PREPARED:
            raise RuntimeError(f"Transaction for {self.participant_id} already {self.state.value}")

    async def commit(self) -> None:
        """Commit and release. A failed commit leaves the transaction rolled back."""
        self._finalise()
        self.state = TransactionState.ROLLED_BACK
        try:
            async with span("multi_db.commit", participant=self.participant_id):
                await self.participant.commit(self.context, self.native)
            self.state = TransactionState.COMMITTED
        finally:
            await self.participant.release(self.context, self.native)

    async def rollback(self) -> None:
        """Roll back and release."""
        self._finalise()
        self.state = TransactionState.ROLLED_BACK
        try:
            async with span("multi_db.rollback", participant=self.participant_id):
                await self.participant.rollback(self.context, self.native)
        finally:
            await self.participant.release(self.context, self.native)


@dataclass
class _RegistryEntry:
    participants: list[str]
    start_time: float


class MultiDatabaseCoordinator:
    """Runs operations across several engines and reports per-participant outcomes.

    Each instance owns its registry of in-flight transactions and the
    background tasks left running by eventually consistent calls.
    """

    def __init__(self) -> None:
        self._active: dict[str, _RegistryEntry] = {}
        self._background: set[asyncio.Task[None]] = set()

    async def execute_coordinated(
        self,
        operations: Sequence[DatabaseOperation],
        config: TransactionConfig | None = None,
    ) -> CoordinationResult:
        """Prepare, execute and then commit or roll back every operation together.

        Args:
            operations: Operations to run, in execution order
            config: Isolation, timeout and prepare retry options

        Returns:
            Result listing committed or rolled back participants and errors

        Raises:
            UnsupportedParticipantError: If a participant has no known capability set
            InvalidDurationError: If ``config.timeout`` cannot be parsed
        """
        config = config or TransactionConfig()
        timeout = config.timeout_seconds()
        participants = [resolve_participant(operation.participant) for operation in operations]

        transaction_id = str(uuid4())
        start_time = time.monotonic()
        result = CoordinationResult(transaction_id=transaction_id)

        self._register(transaction_id, [p.participant_id for p in participants], start_time)
        try:
            async with span("multi_db.transaction.coordinated", transaction_id=transaction_id):
                await self._run_coordinated(operations, participants, config, timeout, result)
        except Exception as e:
            result.add_error("coordinator", e, ParticipantFailure.COORDINATOR)
            logger.error("Coordinated transaction failed", transaction_id=transaction_id, error=str(e))
        finally:
            self._unregister(transaction_id)
            result.duration = time.monotonic() - start_time

        record_transaction_outcome("coordinated", result.success)
        logger.info(
            "Coordinated transaction completed",
            transaction_id=transaction_id,
            success=result.success,
            duration=result.duration,
            committed=len(result.committed),
            rolled_back=len(result.rolled_back),
        )
        return result

    async def _run_coordinated(
        self,
        operations: Sequence[DatabaseOperation],
        participants: list[RelationalParticipant | DocumentParticipant],
        config: TransactionConfig,
        timeout: float | None,
        result: CoordinationResult,
    ) -> None:
        logger.info(
            "Starting coordinated transaction",
            transaction_id=result.transaction_id,
            operation_count=len(operations),
        )

        prepared = await self._prepare_all(operations, participants, config, timeout, result)
        executed = False
        try:
            if result.success:
                executed = await self._execute_prepared(prepared, result)
        finally:
            if executed and result.success:
                await self._commit_all(prepared, result)
            else:
                await self._rollback_all(prepared, result)

    async def _prepare_all(
        self,
        operations: Sequence[DatabaseOperation],
        participants: list[RelationalParticipant | DocumentParticipant],
        config: TransactionConfig,
        timeout: float | None,
        result: CoordinationResult,
    ) -> list[PreparedTransaction]:
        prepared: list[PreparedTransaction] = []

        # every participant gets an attempt so the result reflects all of them
        for operation, participant in zip(operations, participants, strict=True):

            async def begin(participant: Any = participant) -> tuple[Any, Any]:
                async with span("multi_db.prepare", participant=participant.participant_id):
                    return await participant.begin(config, timeout)

            try:
                context, native = await retry_async(
                    begin,
                    max_attempts=config.retry_attempts,
                    delay=config.retry_delay,
                    backoff=1.0,
                    operation=f"prepare {participant.participant_id}",
                )
            except Exception as e:
                result.add_error(participant.participant_id, e, ParticipantFailure.PREPARE)
                continue
            prepared.append(PreparedTransaction(participant, context, native, operation))

        return prepared

    async def _execute_prepared(self, prepared: list[PreparedTransaction], result: CoordinationResult) -> bool:
        for transaction in prepared:
            try:
                await transaction.operation.work(transaction.context)
            except Exception as e:
                result.add_error(transaction.participant_id, e, ParticipantFailure.OPERATION)
                logger.warning(
                    "Operation failed, rolling back all participants",
                    transaction_id=result.transaction_id,
                    operation=transaction.operation.description,
                    error=str(e),
                )
                return False
        return True

    async def _commit_all(self, prepared: list[PreparedTransaction], result: CoordinationResult) -> None:
        landed: list[str] = []
        for transaction in prepared:
            try:
                await transaction.commit()
                landed.append(transaction.participant_id)
            except Exception as e:
                result.add_error(transaction.participant_id, f"Commit failed: {e}", ParticipantFailure.COMMIT)

        if result.success:
            result.committed.extend(landed)
        else:
            result.partially_committed.extend(landed)
            logger.error(
                "Commit failed after other participants committed",
                transaction_id=result.transaction_id,
                partially_committed=landed,
            )

    async def _rollback_all(self, prepared: list[PreparedTransaction], result: CoordinationResult) -> None:
        for transaction in prepared:
            try:
                await transaction.rollback()
                result.rolled_back.append(transaction.participant_id)
            except Exception as e:
                result.add_error(transaction.participant_id, f"Rollback failed: {e}", ParticipantFailure.ROLLBACK)

    async def execute_saga(
        self,
        operations: Sequence[DatabaseOperation],
        compensations: Sequence[Compensation | None],
    ) -> CoordinationResult:
        """Run operations in order, compensating completed steps newest first on failure.

        ``compensations[i]`` undoes ``operations[i]`` and receives the same
        participant handle. Missing entries are skipped. A failing
        compensation is recorded and the remaining ones still run.
        """
        transaction_id = str(uuid4())
        start_time = time.monotonic()
        result = CoordinationResult(transaction_id=transaction_id)

        try:
            async with span("multi_db.transaction.saga", transaction_id=transaction_id):
                await self._run_saga(operations, compensations, result)
        except Exception as e:
            result.add_error("saga", e, ParticipantFailure.COORDINATOR)
            logger.error("Saga transaction failed", transaction_id=transaction_id, error=str(e))
        finally:
            result.duration = time.monotonic() - start_time

        record_transaction_outcome("saga", result.success)
        logger.info(
            "Saga transaction completed",
            transaction_id=transaction_id,
            success=result.success,
            duration=result.duration,
        )
        return result

    async def _run_saga(
        self,
        operations: Sequence[DatabaseOperation],
        compensations: Sequence[Compensation | None],
        result: CoordinationResult,
    ) -> None:
        logger.info("Starting saga transaction", transaction_id=result.transaction_id, operation_count=len(operations))

        completed: list[tuple[int, DatabaseOperation]] = []
        for index, operation in enumerate(operations):
            try:
                await operation.work(operation.participant)
            except Exception as e:
                result.add_error(participant_id(operation.participant), e, ParticipantFailure.OPERATION)
                await self._compensate(completed, compensations, result)
                return
            result.committed.append(participant_id(operation.participant))
            completed.append((index, operation))

    async def _compensate(
        self,
        completed: list[tuple[int, DatabaseOperation]],
        compensations: Sequence[Compensation | None],
        result: CoordinationResult,
    ) -> None:
        for index, operation in reversed(completed):
            name = participant_id(operation.participant)
            compensation = compensations[index] if index < len(compensations) else None
            if compensation is None:
                continue
            try:
                async with span("multi_db.compensate", participant=name, step=index):
                    await compensation(operation.participant)
            except Exception as e:
                result.add_error(name, f"Compensation failed: {e}", ParticipantFailure.COMPENSATION)
                continue
            result.committed.remove(name)
            result.rolled_back.append(name)

        # steps that could not be undone stay visible without claiming success
        result.partially_committed.extend(result.committed)
        result.committed.clear()

    async def execute_eventually_consistent(
        self,
        operations: Sequence[DatabaseOperation],
        timeout: float | str = DEFAULT_CONSISTENCY_TIMEOUT,
    ) -> CoordinationResult:
        """Run every operation concurrently and wait at most ``timeout``.

        The timeout is advisory: operations still running when it expires are
        not cancelled. They keep recording their outcome into the returned
        result; ``drain()`` waits for them.

        Raises:
            InvalidDurationError: If ``timeout`` cannot be parsed
        """
        timeout_seconds = parse_duration(timeout)
        transaction_id = str(uuid4())
        start_time = time.monotonic()
        result = CoordinationResult(transaction_id=transaction_id)

        try:
            async with span("multi_db.transaction.eventual", transaction_id=transaction_id):
                await self._run_eventually_consistent(operations, timeout_seconds, result)
        except Exception as e:
            result.add_error("eventual", e, ParticipantFailure.COORDINATOR)
            logger.error("Eventual consistency transaction failed", transaction_id=transaction_id, error=str(e))
        finally:
            result.duration = time.monotonic() - start_time

        record_transaction_outcome("eventual", result.success)
        logger.info(
            "Eventual consistency transaction completed",
            transaction_id=transaction_id,
            success=result.success,
            duration=result.duration,
        )
        return result

    async def _run_eventually_consistent(
        self,
        operations: Sequence[DatabaseOperation],
        timeout: float | None,
        result: CoordinationResult,
    ) -> None:
        logger.info("Starting eventual consistency transaction", transaction_id=result.transaction_id)

        tasks = [asyncio.create_task(self._run_detached(operation, result)) for operation in operations]
        for task in tasks:
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        if not tasks:
            return

        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning(
                "Consistency timeout reached with operations still running",
                transaction_id=result.transaction_id,
                pending=len(pending),
                timeout=timeout,
            )

    async def _run_detached(self, operation: DatabaseOperation, result: CoordinationResult) -> None:
        name = participant_id(operation.participant)
        try:
            await operation.work(operation.participant)
        except Exception as e:
            result.add_error(name, e, ParticipantFailure.OPERATION)
            return
        result.committed.append(name)

    async def drain(self) -> None:
        """Wait for operations left running by eventually consistent calls."""
        while pending := [task for task in self._background if not task.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    async def check_consistency(
        self,
        engines: Sequence[Any],
        predicate: Callable[[Sequence[Any]], Awaitable[bool]],
    ) -> ConsistencyReport:
        """Time one consistency predicate across engines. Never raises."""
        start_time = time.monotonic()
        try:
            is_consistent = bool(await predicate(engines))
        except Exception as e:
            logger.error("Consistency check failed", error=str(e))
            return ConsistencyReport(
                is_consistent=False,
                duration=time.monotonic() - start_time,
                details={"error": str(e), "kind": ParticipantFailure.CONSISTENCY_CHECK.value},
            )
        return ConsistencyReport(
            is_consistent=is_consistent,
            duration=time.monotonic() - start_time,
            details={"engines": len(engines)},
        )

    def get_active_transactions(self) -> list[ActiveTransaction]:
        """Snapshot of in-flight coordinated transactions."""
        now = time.monotonic()
        return [
            ActiveTransaction(id=transaction_id, participants=list(entry.participants), elapsed=now - entry.start_time)
            for transaction_id, entry in self._active.items()
        ]

    def _register(self, transaction_id: str, participants: list[str], start_time: float) -> None:
        if transaction_id in self._active:
            raise RuntimeError(f"Transaction {transaction_id} is already registered")
        self._active[transaction_id] = _RegistryEntry(participants, start_time)
        active_transactions.inc()

    def _unregister(self, transaction_id: str) -> None:
        if self._active.pop(transaction_id, None) is not None:
            active_transactions.dec()


# Tasks from throwaway coordinators that outlived their eventual-mode call
_detached_tasks: set[asyncio.Task[None]] = set()


async def execute_coordinated_transaction(
    operations: Sequence[DatabaseOperation],
    config: TransactionConfig | None = None,
) -> CoordinationResult:
    return await MultiDatabaseCoordinator().execute_coordinated(operations, config)


async def execute_saga_transaction(
    operations: Sequence[DatabaseOperation],
    compensations: Sequence[Compensation | None],
) -> CoordinationResult:
    return await MultiDatabaseCoordinator().execute_saga(operations, compensations)


async def execute_eventually_consistent(
    operations: Sequence[DatabaseOperation],
    timeout: float | str = DEFAULT_CONSISTENCY_TIMEOUT,
) -> CoordinationResult:
    coordinator = MultiDatabaseCoordinator()
    result = await coordinator.execute_eventually_consistent(operations, timeout)
    for task in list(coordinator._background):
        _detached_tasks.add(task)
        task.add_done_callback(_detached_tasks.discard)
    return result


async def check_multi_database_consistency(
    engines: Sequence[Any],
    predicate: Callable[[Sequence[Any]], Awaitable[bool]],
) -> ConsistencyReport:
    return await MultiDatabaseCoordinator().check_consistency(engines, predicate)
