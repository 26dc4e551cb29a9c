"""
Unit tests for the transactional executor against a per-test SQLite database.
"""

from __future__ import annotations

import time

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import scoped_session, sessionmaker

from tests.factories.demo import UserFactory
from tests.helpers.utils import committed_scalars, count_committed, count_rows
from transactor.models import User
from transactor.tx import (
    BusinessError,
    Cancelled,
    CommitError,
    DeadlineExceeded,
    Outcome,
    TransactionalExecutor,
    TransactionRolledBack,
    TxContext,
    TxOptions,
    bad_request,
    execute,
    execute_merged,
    execute_or_raise,
    is_bad_request,
    is_server_db_error,
    is_server_db_transaction_error,
    new_format_converter,
    server_db_error,
    server_db_transaction_error,
)

erk_converter = new_format_converter(server_db_transaction_error, "erk")


class TestDualOutcome:
    def test_commit_when_unit_of_work_returns_none(self, session):
        """
        GIVEN a unit of work that creates one user and returns None
        WHEN it runs through the executor
        THEN no error is reported and the row is committed.
        """

        def run(tx):
            tx.add(UserFactory.build(name="test-user"))
            return None

        erk, err = execute(TxContext.background(), session, run)

        assert erk is None
        assert err is None
        assert count_rows(session, User) == 1

    def test_business_error_rolls_back_and_is_reported_unchanged(self, session):
        """
        GIVEN a unit of work that inserts a row then returns a business error
        THEN the exact error object is reported and the insert is discarded.
        """
        failure = bad_request("validation failed")

        def run(tx):
            tx.add(UserFactory.build(name="rollback-user"))
            tx.flush()
            return failure

        erk, err = execute(TxContext.background(), session, run)

        assert erk is failure
        assert isinstance(err, TransactionRolledBack)
        assert err.__cause__ is failure
        assert count_rows(session, User, name="rollback-user") == 0

    def test_raised_business_error_is_captured_like_a_returned_one(self, session):
        failure = server_db_error("business logic error: %s", "validation failed")

        def run(tx):
            tx.add(UserFactory.build())
            raise failure

        erk, err = execute(TxContext.background(), session, run)

        assert erk is failure
        assert is_server_db_error(erk)
        assert err is not None
        assert count_rows(session, User) == 0

    def test_deadline_after_clean_return_is_infra_only(self, session):
        """
        GIVEN a unit of work that sleeps past the context deadline and returns None
        THEN the business slot is empty and the infra slot holds the deadline.
        """
        with TxContext.background().with_timeout(0.05) as ctx:

            def run(tx):
                tx.add(UserFactory.build())
                time.sleep(0.1)
                return None

            erk, err = execute(ctx, session, run)

        assert erk is None
        assert isinstance(err, DeadlineExceeded)
        assert count_rows(session, User) == 0

    def test_business_error_returned_after_deadline_keeps_priority(self, session):
        failure = bad_request("late validation failure")
        ctx = TxContext.background().with_timeout(0.05)

        def run(tx):
            time.sleep(0.1)
            return failure

        erk, err = execute(ctx, session, run)

        assert erk is failure
        assert isinstance(err, TransactionRolledBack)

    def test_statement_after_deadline_aborts_mid_flight(self, session):
        ctx = TxContext.background().with_timeout(0.05)
        reached_insert = []

        def run(tx):
            time.sleep(0.1)
            tx.add(UserFactory.build())
            tx.flush()
            reached_insert.append(True)
            return None

        erk, err = execute(ctx, session, run)

        assert erk is None
        assert isinstance(err, DeadlineExceeded)
        assert reached_insert == []
        assert count_rows(session, User) == 0

    def test_cancelled_context_never_runs_the_unit_of_work(self, session):
        ctx = TxContext.background().with_cancel()
        ctx.cancel()
        calls = []

        erk, err = execute(ctx, session, lambda tx: calls.append(tx))

        assert erk is None
        assert isinstance(err, Cancelled)
        assert calls == []

    def test_driver_error_is_infra_only(self, session):
        """A NOT NULL violation raised while flushing is an infrastructure failure."""

        def run(tx):
            tx.add(User(name=None))
            return None

        erk, err = execute(TxContext.background(), session, run)

        assert erk is None
        assert isinstance(err, IntegrityError)
        assert count_rows(session, User) == 0

    def test_commit_failure_is_infra_only(self, session):
        @event.listens_for(session, "before_commit")
        def _fail_commit(sess):
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        def run(tx):
            tx.add(UserFactory.build())
            return None

        erk, err = execute(TxContext.background(), session, run)
        event.remove(session, "before_commit", _fail_commit)

        assert erk is None
        assert isinstance(err, CommitError)
        assert isinstance(err.__cause__, OperationalError)
        assert count_rows(session, User) == 0

    def test_unexpected_exception_propagates_after_rollback(self, session):
        def run(tx):
            tx.add(UserFactory.build())
            tx.flush()
            raise ValueError("bug in unit of work")

        with pytest.raises(ValueError, match="bug in unit of work"):
            execute(TxContext.background(), session, run)

        assert not session.in_transaction()
        assert count_rows(session, User) == 0

    def test_non_error_return_value_is_rejected(self, session):
        with pytest.raises(TypeError, match="must return a BusinessError or None"):
            execute(TxContext.background(), session, lambda tx: "not an error")

    def test_session_stays_open_for_the_caller(self, session, engine):
        execute(TxContext.background(), session, lambda tx: None)
        execute(TxContext.background(), session, lambda tx: bad_request("nope"))

        assert session.get_bind() is engine
        assert count_rows(session, User) == 0

    def test_scoped_session_is_accepted(self, engine):
        scoped = scoped_session(sessionmaker(bind=engine))
        try:

            def run(tx):
                tx.add(UserFactory.build(name="scoped"))
                return None

            outcome = execute(TxContext.background(), scoped, run)
            assert outcome.ok
            assert count_rows(scoped(), User, name="scoped") == 1
        finally:
            scoped.remove()


class TestNesting:
    def test_inner_commit_composes_with_outer_commit(self, session):
        """
        GIVEN an outer unit of work creating A and an inner one updating A
        WHEN both return None
        THEN A exists with the inner update applied.
        """
        ctx = TxContext.background()

        def outer(tx):
            a = User(name="A", age=1)
            tx.add(a)
            tx.flush()

            def inner(tx2):
                user = tx2.get(User, a.id)
                user.name = "A2"
                user.age = 2
                return None

            erk, err = execute(ctx, tx, inner)
            if err is not None:
                return erk or server_db_transaction_error("inner failed: %s", err)
            return None

        erk, err = execute(ctx, session, outer)

        assert (erk, err) == (None, None)
        users = session.scalars(select(User)).all()
        session.rollback()
        assert [(u.name, u.age) for u in users] == [("A2", 2)]

    def test_inner_business_error_passes_through_outer(self, session):
        ctx = TxContext.background()
        failure = bad_request("inner validation failed")

        def outer(tx):
            tx.add(User(name="B"))
            tx.flush()
            inner_erk, inner_err = execute(ctx, tx, lambda tx2: failure)
            assert inner_erk is failure
            assert isinstance(inner_err, TransactionRolledBack)
            return inner_erk

        erk, err = execute(ctx, session, outer)

        assert erk is failure
        assert isinstance(err, TransactionRolledBack)
        assert count_rows(session, User) == 0

    def test_inner_rollback_discards_only_inner_writes(self, session):
        ctx = TxContext.background()

        def outer(tx):
            tx.add(User(name="kept"))
            tx.flush()

            def inner(tx2):
                tx2.add(User(name="discarded"))
                tx2.flush()
                return bad_request("inner rejected")

            inner_erk, _ = execute(ctx, tx, inner)
            assert is_bad_request(inner_erk)
            # The outer scope chooses to carry on.
            return None

        erk, err = execute(ctx, session, outer)

        assert (erk, err) == (None, None)
        assert count_rows(session, User, name="kept") == 1
        assert count_rows(session, User, name="discarded") == 0


class TestOptions:
    def test_read_only_blocks_orm_writes(self, session):
        from transactor.tx import ReadOnlyViolation

        def run(tx):
            tx.add(UserFactory.build())
            return None

        erk, err = execute(TxContext.background(), session, run, TxOptions(read_only=True))

        assert erk is None
        assert isinstance(err, ReadOnlyViolation)
        assert count_rows(session, User) == 0

    def test_read_only_allows_reads(self, session):
        UserFactory(name="reader")
        seen = []

        def run(tx):
            seen.extend(u.name for u in tx.scalars(select(User)))
            return None

        outcome = execute(TxContext.background(), session, run, TxOptions(read_only=True))

        assert outcome == Outcome(None, None)
        assert seen == ["reader"]

    def test_isolation_level_is_forwarded(self, session):
        def run(tx):
            tx.add(UserFactory.build())
            return None

        outcome = execute(
            TxContext.background(), session, run, TxOptions(isolation_level="SERIALIZABLE")
        )

        assert outcome.ok
        assert count_rows(session, User) == 1

    def test_unsupported_isolation_level_fails_begin(self, session):
        from transactor.tx import BeginError

        calls = []
        erk, err = execute(
            TxContext.background(),
            session,
            lambda tx: calls.append(tx),
            TxOptions(isolation_level="BOGUS"),
        )

        assert erk is None
        assert isinstance(err, BeginError)
        assert calls == []


class TestSingleErrorShape:
    def test_success_returns_none(self, session):
        assert execute_merged(TxContext.background(), session, lambda tx: None, erk_converter) is None

    def test_business_error_is_never_converted(self, session):
        converted = []
        failure = bad_request("invalid input")

        def convert(err):
            converted.append(err)
            return server_db_transaction_error("error=%s", err)

        result = execute_merged(TxContext.background(), session, lambda tx: failure, convert)

        assert result is failure
        assert converted == []

    def test_infra_failure_goes_through_converter(self, session):
        ctx = TxContext.background().with_timeout(0.05)

        def run(tx):
            time.sleep(0.1)
            return None

        result = execute_merged(ctx, session, run, erk_converter)

        assert is_server_db_transaction_error(result)
        assert result.message == "erk=context deadline exceeded"
        assert isinstance(result.cause, DeadlineExceeded)

    def test_execute_or_raise(self, session):
        failure = bad_request("rejected")
        with pytest.raises(BusinessError) as excinfo:
            execute_or_raise(TxContext.background(), session, lambda tx: failure, erk_converter)
        assert excinfo.value is failure

        execute_or_raise(TxContext.background(), session, lambda tx: None, erk_converter)


class TestOutcomeMerge:
    def test_success_merges_to_none(self):
        assert Outcome(None, None).merge(erk_converter) is None

    def test_business_error_wins(self):
        failure = bad_request("x")
        assert Outcome(failure, RuntimeError("wrapped")).merge(erk_converter) is failure

    def test_infra_only_is_converted(self):
        merged = Outcome(None, RuntimeError("conflict")).merge(erk_converter)
        assert is_server_db_transaction_error(merged)
        assert merged.message == "erk=conflict"


class TestTransactionalExecutor:
    def test_default_converter_wraps_infra_failures(self, session):
        executor = TransactionalExecutor()
        ctx = TxContext.background().with_cancel()
        ctx.cancel()

        result = executor.run_merged(ctx, session, lambda tx: None)

        assert is_server_db_transaction_error(result)
        assert "context canceled" in result.message

    def test_default_options_apply_when_call_passes_none(self, session):
        from transactor.tx import ReadOnlyViolation

        executor = TransactionalExecutor(options=TxOptions(read_only=True))

        def run(tx):
            tx.add(UserFactory.build())
            return None

        _, err = executor.run(TxContext.background(), session, run)
        assert isinstance(err, ReadOnlyViolation)

        outcome = executor.run(TxContext.background(), session, run, TxOptions())
        assert outcome.ok

    def test_run_or_raise_raises_converted_error(self, session):
        executor = TransactionalExecutor(convert=erk_converter)

        def run(tx):
            tx.add(User(name=None))
            return None

        with pytest.raises(BusinessError) as excinfo:
            executor.run_or_raise(TxContext.background(), session, run)

        assert is_server_db_transaction_error(excinfo.value)
        assert isinstance(excinfo.value.cause, IntegrityError)


class TestCommittedState:
    """Outcomes checked against what another session sees after this one closes."""

    def test_clean_commit_is_persisted(self, session):
        def run(tx):
            tx.add(User(name="durable"))
            return None

        outcome = execute(TxContext.background(), session, run)

        assert outcome.ok
        assert count_committed(session, User, name="durable") == 1

    def test_commit_after_prior_read_is_persisted(self, session):
        """
        GIVEN a session that autobegan a transaction on a plain read
        WHEN the executor runs a write on it and reports success
        THEN the write is committed, not left in an open savepoint.
        """
        assert session.scalar(select(func.count(User.id))) == 0
        assert session.in_transaction()

        def run(tx):
            tx.add(User(name="after-read"))
            return None

        outcome = execute(TxContext.background(), session, run)

        assert outcome == Outcome(None, None)
        assert not session.in_transaction()
        assert count_committed(session, User, name="after-read") == 1

    def test_business_error_after_prior_read_leaves_nothing(self, session):
        session.scalar(select(func.count(User.id)))
        failure = bad_request("validation failed")

        def run(tx):
            tx.add(User(name="rejected"))
            tx.flush()
            return failure

        erk, err = execute(TxContext.background(), session, run)

        assert erk is failure
        assert isinstance(err, TransactionRolledBack)
        assert count_committed(session, User) == 0

    def test_isolation_level_on_autobegun_transaction_fails_begin(self, session):
        from transactor.tx import BeginError

        session.scalar(select(func.count(User.id)))
        calls = []

        erk, err = execute(
            TxContext.background(),
            session,
            lambda tx: calls.append(tx),
            TxOptions(isolation_level="SERIALIZABLE"),
        )

        assert erk is None
        assert isinstance(err, BeginError)
        assert calls == []

    def test_business_error_rolls_back_committed_view(self, session):
        def run(tx):
            tx.add(User(name="never"))
            tx.flush()
            return bad_request("validation failed")

        execute(TxContext.background(), session, run)

        assert count_committed(session, User) == 0

    def test_nested_update_is_committed_by_outer(self, session):
        ctx = TxContext.background()

        def outer(tx):
            a = User(name="A", age=1)
            tx.add(a)
            tx.flush()

            def inner(tx2):
                tx2.get(User, a.id).name = "A2"
                return None

            inner_erk, inner_err = execute(ctx, tx, inner)
            return inner_erk

        assert execute(ctx, session, outer).ok
        assert committed_scalars(session, select(User.name)) == ["A2"]

    def test_inner_rollback_keeps_only_outer_writes_committed(self, session):
        ctx = TxContext.background()

        def outer(tx):
            tx.add(User(name="kept"))
            tx.flush()

            def inner(tx2):
                tx2.add(User(name="discarded"))
                tx2.flush()
                return bad_request("inner rejected")

            execute(ctx, tx, inner)
            return None

        assert execute(ctx, session, outer).ok
        assert committed_scalars(session, select(User.name)) == ["kept"]

    def test_inner_business_error_propagated_leaves_nothing(self, session):
        ctx = TxContext.background()

        def outer(tx):
            tx.add(User(name="B"))
            tx.flush()
            erk, _ = execute(ctx, tx, lambda tx2: bad_request("inner failed"))
            return erk

        erk, _ = execute(ctx, session, outer)

        assert is_bad_request(erk)
        assert count_committed(session, User) == 0
