"""
Unit tests for moving errors across the process boundary.
"""

import pickle
import unittest

from parallel.envelope import KIND_BREAK, KIND_ERROR, KIND_KILL, ExceptionEnvelope
from parallel.errors import Break, DeadWorker, Kill, RemoteTraceback, UndumpableException
from parallel.state import OutcomeKind


class NeedsTwoArguments(Exception):
    """Pickles, but cannot be rebuilt since args no longer match __init__."""

    def __init__(self, a, b):
        super().__init__(f"{a}-{b}")


def _raised(error):
    try:
        raise error
    except BaseException as e:
        return e


def _transported(envelope):
    return pickle.loads(pickle.dumps(envelope))


class TestExceptionEnvelope(unittest.TestCase):

    def test_plain_error_survives(self):
        envelope = _transported(ExceptionEnvelope.wrap(_raised(ValueError("boom"))))
        self.assertEqual(envelope.kind, KIND_ERROR)
        self.assertTrue(envelope.dumpable)
        self.assertEqual(envelope.type_name, "builtins.ValueError")

        error = envelope.unwrap()
        self.assertIsInstance(error, ValueError)
        self.assertEqual(str(error), "boom")

    def test_remote_traceback_is_chained(self):
        envelope = _transported(ExceptionEnvelope.wrap(_raised(KeyError("missing"))))
        error = envelope.unwrap()
        self.assertIsInstance(error.__cause__, RemoteTraceback)
        self.assertIn("KeyError", str(error.__cause__))
        self.assertIn("_raised", str(error.__cause__))

    def test_unrebuildable_error_is_substituted(self):
        envelope = _transported(ExceptionEnvelope.wrap(_raised(NeedsTwoArguments("x", "y"))))
        self.assertFalse(envelope.dumpable)
        error = envelope.unwrap()
        self.assertIsInstance(error, UndumpableException)
        self.assertTrue(str(error).startswith("Undumpable Exception -- "))
        self.assertIn("NeedsTwoArguments", str(error))
        self.assertEqual(envelope.message, "x-y")

    def test_unpicklable_attribute_is_substituted(self):
        error = ValueError("with callback")
        error.callback = lambda: None
        envelope = _transported(ExceptionEnvelope.wrap(_raised(error)))
        self.assertIsInstance(envelope.unwrap(), UndumpableException)

    def test_sentinel_kinds(self):
        self.assertEqual(ExceptionEnvelope.wrap(Break()).kind, KIND_BREAK)
        self.assertEqual(ExceptionEnvelope.wrap(Kill()).kind, KIND_KILL)
        self.assertIs(ExceptionEnvelope.wrap(Break()).outcome().kind, OutcomeKind.BROKEN)
        self.assertIs(ExceptionEnvelope.wrap(Kill()).outcome().kind, OutcomeKind.KILLED)

    def test_failed_outcome_carries_error(self):
        outcome = ExceptionEnvelope.wrap(RuntimeError("bad")).outcome()
        self.assertIs(outcome.kind, OutcomeKind.FAILED)
        self.assertEqual(str(outcome.error), "bad")

    def test_dead_worker_pickles_with_pid(self):
        error = pickle.loads(pickle.dumps(DeadWorker(1234)))
        self.assertEqual(error.pid, 1234)
        self.assertIn("1234", str(error))
