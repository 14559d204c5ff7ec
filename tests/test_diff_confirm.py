"""Tests for diff rendering and the terminal confirmation gate."""

import io
import unittest

import pytest

from clusterledger.confirm import TerminalConfirmationGate
from clusterledger.diff import DiffPresenter, build_diff
from clusterledger.errors import ChangeCancelled, DiffRenderError

ORIGINAL = "a: 1\nb: 2\nc: 3\n"
CANDIDATE = "a: 1\nb: 20\nc: 3\nd: 4\n"


class TestBuildDiff(unittest.TestCase):

    def test_unified_format(self):
        lines = build_diff(ORIGINAL, CANDIDATE)
        self.assertEqual(lines[0], "--- original\n")
        self.assertEqual(lines[1], "+++ new\n")
        self.assertTrue(lines[2].startswith("@@"))
        self.assertIn("-b: 2\n", lines)
        self.assertIn("+b: 20\n", lines)
        self.assertIn("+d: 4\n", lines)

    def test_line_order_preserved(self):
        lines = build_diff(ORIGINAL, CANDIDATE)
        body = [line for line in lines[3:]]
        self.assertEqual(body, [" a: 1\n", "-b: 2\n", "+b: 20\n", " c: 3\n", "+d: 4\n"])

    def test_missing_trailing_newline_is_terminated(self):
        lines = build_diff("a: 1\n", "a: 2")
        self.assertIn("+a: 2\n", lines)
        self.assertTrue(all(line.endswith("\n") for line in lines))

    def test_identical_texts_produce_nothing(self):
        self.assertEqual(build_diff(ORIGINAL, ORIGINAL), [])


class _BrokenSink(io.StringIO):
    def writelines(self, lines):
        raise OSError(32, "Broken pipe")


def test_presenter_writes_plain_diff_to_non_tty():
    sink = io.StringIO()
    DiffPresenter(sink=sink).render(ORIGINAL, CANDIDATE)
    output = sink.getvalue()
    assert "+b: 20\n" in output
    assert "\033[" not in output


def test_presenter_colors_when_forced():
    sink = io.StringIO()
    DiffPresenter(sink=sink, color="always").render(ORIGINAL, CANDIDATE)
    output = sink.getvalue()
    assert "\033[32m+b: 20\033[0m\n" in output
    assert "\033[31m-b: 2\033[0m\n" in output
    assert output.startswith("--- original\n+++ new\n")


def test_presenter_sink_failure_is_distinct_error():
    with pytest.raises(DiffRenderError) as ctx:
        DiffPresenter(sink=_BrokenSink()).render(ORIGINAL, CANDIDATE)
    assert "Broken pipe" in str(ctx.value)


@pytest.mark.parametrize("answer", ["y", "Y", "yes", " YES "])
def test_gate_accepts_affirmative(answer):
    prompts = []

    def read(prompt):
        prompts.append(prompt)
        return answer

    TerminalConfirmationGate(read=read).confirm("Apply? [y/N]:")
    assert prompts == ["Apply? [y/N]:"]


@pytest.mark.parametrize("answer", ["", "n", "no", "maybe", "yy"])
def test_gate_rejects_everything_else(answer):
    with pytest.raises(ChangeCancelled):
        TerminalConfirmationGate(read=lambda prompt: answer).confirm("Apply? [y/N]:")


@pytest.mark.parametrize("interrupt", [EOFError, KeyboardInterrupt])
def test_gate_interrupt_is_cancellation(interrupt):
    def read(prompt):
        raise interrupt()

    with pytest.raises(ChangeCancelled) as ctx:
        TerminalConfirmationGate(read=read).confirm("Apply? [y/N]:")
    assert "interrupted" in str(ctx.value)


def test_presenter_closed_sink_is_distinct_error():
    sink = io.StringIO()
    sink.close()
    with pytest.raises(DiffRenderError):
        DiffPresenter(sink=sink).render(ORIGINAL, CANDIDATE)
