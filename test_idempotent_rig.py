"""
Command-line front end: preamble diagnostics and an end-to-end run on the
one-generator rig.  Every test here uses a pytest fixture, so
there is no direct runner.
"""

from __future__ import annotations

import argparse

import pytest

import idempotent_rig
from rig.monomials import IDEMPOTENT_RIG, MonomialAlgebra

ONE_GENERATOR = MonomialAlgebra(((0, 1), (1, 1)), ("1", "a"))


def make_args(tmp_path, **overrides):
    args = dict(output=str(tmp_path / "IdempotentRig.txt"), workers=1, chunk=4,
                cache=None, quiet=True, trace=False)
    args.update(overrides)
    return argparse.Namespace(**args)


def test_preamble(capsys):
    assert idempotent_rig.run_preamble(IDEMPOTENT_RIG)
    out = capsys.readouterr().out
    assert "Monomial multiplication table" in out
    assert " aba|  aba  aba   ab   ab  aba  aba   ab\n" in out
    assert "(a+b)^2 = a+b+ab+ba" in out
    assert "Checking indexToTuple/tupleToIndex ...\nDone" in out


def test_preamble_small_algebra(capsys):
    # 16 elements: the element listing stops at the end of the universe
    assert idempotent_rig.run_preamble(ONE_GENERATOR)
    out = capsys.readouterr().out
    listing = out.split("First few sums ...\n")[1].split("\n\n")[0]
    assert listing.splitlines() == [ONE_GENERATOR.format_index(k) for k in range(16)]
    assert "(a)^2 = a" in out


def test_run_one_generator(tmp_path, capsys):
    args = make_args(tmp_path, cache=str(tmp_path / "cache"))
    assert idempotent_rig.run_quotient(args, ONE_GENERATOR) == 0
    first = (tmp_path / "IdempotentRig.txt").read_text()
    assert first.startswith("{0,\n1")
    assert (tmp_path / "cache" / "mtab.npy").exists()

    # Second run reads the cached tables and reproduces the report
    assert idempotent_rig.run_quotient(args, ONE_GENERATOR) == 0
    assert "Loaded multiplication and addition tables" in capsys.readouterr().out
    assert (tmp_path / "IdempotentRig.txt").read_text() == first


def test_main_table(monkeypatch):
    monkeypatch.setattr("sys.argv", ["idempotent_rig.py", "table"])
    with pytest.raises(SystemExit) as exc:
        idempotent_rig.main()
    assert exc.value.code == 0
