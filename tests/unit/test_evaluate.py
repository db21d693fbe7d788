"""Tests for the stop/continue policy of the iteration loop."""

from __future__ import annotations

import pytest

from swarmcode.agent.nodes.evaluate import (
    decide_outcome,
    has_errors,
    is_verification_command,
    was_verified,
)
from swarmcode.agent.operations import Operation, OperationOutcome, OutcomeStatus
from swarmcode.agent.state import TERMINAL_OUTCOMES, LoopOutcome


def _run(command: str, status: OutcomeStatus, output: str = "") -> Operation:
    return Operation.execute(command).with_outcome(OperationOutcome(status, output=output))


# ── decide_outcome ───────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("errors", "verified", "iteration", "expected"),
    [
        (False, True, 1, LoopOutcome.SUCCESS),
        (False, True, 5, LoopOutcome.SUCCESS),
        (False, False, 1, LoopOutcome.NEEDS_VERIFICATION),
        (True, False, 1, LoopOutcome.CONTINUE),
        (True, True, 2, LoopOutcome.CONTINUE),
        (True, False, 5, LoopOutcome.EXHAUSTED),
        (False, False, 5, LoopOutcome.EXHAUSTED),
    ],
)
def test_auto_debug_policy(
    errors: bool, verified: bool, iteration: int, expected: LoopOutcome
) -> None:
    outcome = decide_outcome(
        errors=errors, verified=verified, iteration=iteration, max_iterations=5, auto_debug=True
    )
    assert outcome == expected


@pytest.mark.parametrize(
    ("errors", "iteration", "expected"),
    [
        (False, 1, LoopOutcome.COMPLETED),
        (True, 1, LoopOutcome.CONTINUE),
        (True, 3, LoopOutcome.EXHAUSTED),
    ],
)
def test_plain_policy(errors: bool, iteration: int, expected: LoopOutcome) -> None:
    outcome = decide_outcome(
        errors=errors, verified=False, iteration=iteration, max_iterations=3, auto_debug=False
    )
    assert outcome == expected


def test_needs_verification_is_not_terminal() -> None:
    assert LoopOutcome.NEEDS_VERIFICATION not in TERMINAL_OUTCOMES
    assert LoopOutcome.CONTINUE not in TERMINAL_OUTCOMES
    assert LoopOutcome.CANCELLED in TERMINAL_OUTCOMES


# ── Error and verification detection ─────────────────────────────────────────


class TestDetection:
    def test_failed_operation_is_an_error(self) -> None:
        assert has_errors([_run("node a.js", OutcomeStatus.FAILED)])

    def test_timeout_is_an_error(self) -> None:
        assert has_errors([_run("node a.js", OutcomeStatus.TIMED_OUT)])

    def test_error_words_in_successful_output(self) -> None:
        assert has_errors([_run("npm test", OutcomeStatus.SUCCEEDED, "1 test failed")])

    def test_awaiting_approval_is_not_an_error(self) -> None:
        op = _run("npm install", OutcomeStatus.AWAITING_APPROVAL, "Awaiting approval: npm install")
        assert not has_errors([op])
        assert not was_verified([op])

    def test_successful_run_verifies(self) -> None:
        assert was_verified([_run("node hello.js", OutcomeStatus.SUCCEEDED, "hi")])

    def test_failed_run_does_not_verify(self) -> None:
        assert not was_verified([_run("node hello.js", OutcomeStatus.FAILED)])

    def test_non_verifying_command(self) -> None:
        assert not was_verified([_run("ls -la", OutcomeStatus.SUCCEEDED, "a.js")])

    def test_write_only_iteration_is_unverified(self) -> None:
        op = Operation.write("a.js", "1").with_outcome(OperationOutcome(OutcomeStatus.SUCCEEDED))
        assert not has_errors([op])
        assert not was_verified([op])


@pytest.mark.parametrize(
    "command",
    ["node app.js", "python3 main.py", "npm test", "pytest -q", "go test ./...", "cd app && npm start"],
)
def test_verification_commands(command: str) -> None:
    assert is_verification_command(command)


@pytest.mark.parametrize("command", ["ls", "cat a.js", "echo node", "mkdir src"])
def test_non_verification_commands(command: str) -> None:
    assert not is_verification_command(command)


@pytest.mark.parametrize(
    "command",
    ["node --version", "node -v", "python3 --version", "npx --help", "node -v && ls"],
)
def test_version_and_help_runs_do_not_verify(command: str) -> None:
    assert not is_verification_command(command)


def test_version_check_then_real_run_verifies() -> None:
    assert is_verification_command("node --version && node app.js")


def test_version_check_after_write_is_unverified() -> None:
    write = Operation.write("app.js", "throw new Error('x')").with_outcome(
        OperationOutcome(OutcomeStatus.SUCCEEDED)
    )
    ops = [write, _run("node --version", OutcomeStatus.SUCCEEDED, "v20.11.0")]
    assert not has_errors(ops)
    assert not was_verified(ops)
