#!/usr/bin/env python3
"""
What are the elements of an idempotent rig with two generators?

A rig has a commutative associative addition, an associative multiplication
that distributes over addition, a 0 with r+0 = r and 0r = 0 = r0, and a 1
with 1r = r = r1.  It is idempotent if rr = r for all r.

Every formal sum over the monomials 1, a, b, ab, ba, aba, bab with
coefficients 0..3 is one of 4^7 = 16384 canonical elements.  This script
builds their product and sum tables, groups elements by their squares, and
merges classes until + and * are well defined on the quotient.  The current
partition is rewritten to the output file after every merge.

Usage:
  python idempotent_rig.py table                     # monomial table and self-checks
  python idempotent_rig.py run                       # full computation
  python idempotent_rig.py run --cache .cache --workers 4
"""

import argparse
import sys
import time

from rig.monomials import IDEMPOTENT_RIG, MonomialAlgebra
from rig.partition import InvariantViolation, Partition
from rig.report import OUTPUT_FILE, format_partition, write_checkpoint
from rig.tables import DEFAULT_CHUNK, build_tables, load_tables, save_tables


# ── Preamble ──────────────────────────────────────────────────


def print_monomial_table(algebra: MonomialAlgebra):
    names = algebra.names
    n = algebra.num_monomials
    print("Monomial multiplication table")
    print("     " + "".join(f"{name:>5}" for name in names))
    print("     " + "  ===" * n)
    for i in range(n):
        row = "".join(f"{names[algebra.table[i][j]]:>5}" for j in range(n))
        print(f"{names[i]:>4}|{row}")
    print()


def check_bijection(algebra: MonomialAlgebra) -> bool:
    print("Checking indexToTuple/tupleToIndex ...")
    for k in range(algebra.num_elements):
        if algebra.tuple_to_index(algebra.index_to_tuple(k)) != k:
            print(f"indexToTuple/tupleToIndex failure for index={k}")
            return False
    print("Done\n")
    return True


def run_preamble(algebra: MonomialAlgebra) -> bool:
    print_monomial_table(algebra)
    ok = check_bijection(algebra)

    print("First few sums ...")
    for k in range(min(20, algebra.num_elements)):
        print(algebra.format_index(k))
    print("\n")

    a_plus_b = tuple(int(name in ("a", "b")) for name in algebra.names)
    square = algebra.multiply_tuples(a_plus_b, a_plus_b)
    print("Test multiplication")
    print(f"{algebra.format_tuple(a_plus_b, par=True)}^2 = {algebra.format_tuple(square)}\n")
    return ok


# ── Full run ──────────────────────────────────────────────────


def get_tables(algebra: MonomialAlgebra, args):
    if args.cache:
        cached = load_tables(args.cache, algebra)
        if cached is not None:
            print(f"Loaded multiplication and addition tables from {args.cache}\n", flush=True)
            return cached

    print("Creating multiplication and addition tables ...", flush=True)
    t0 = time.time()
    mtab, atab = build_tables(algebra, workers=args.workers, chunk=args.chunk,
                              verbose=not args.quiet)
    print(f"Done ({time.time() - t0:.1f}s)\n", flush=True)

    if args.cache:
        save_tables(args.cache, mtab, atab)
        print(f"Saved tables to {args.cache}\n", flush=True)
    return mtab, atab


def run_quotient(args, algebra: MonomialAlgebra = IDEMPOTENT_RIG) -> int:
    if not run_preamble(algebra):
        return 1

    mtab, atab = get_tables(algebra, args)

    partition = Partition(mtab, atab, verbose=not args.quiet, trace=args.trace)
    partition.seed()
    partition.check()
    partition.fix_labels()

    print("Validating equivalence class info ...", flush=True)
    checked = partition.check()
    print(f"Done, total elements checked = {checked}\n", flush=True)

    def checkpoint(p: Partition):
        write_checkpoint(format_partition(p, algebra), args.output)

    t0 = time.time()
    merges = partition.close(on_merge=checkpoint)
    elapsed = time.time() - t0

    # Also covers the case where seeding alone was already a congruence
    checkpoint(partition)
    print(f"{merges} merges in {elapsed:.1f}s")
    print(f"We now have {len(partition)} equivalence classes, written to {args.output}")
    return 0


# ── Main ──────────────────────────────────────────────────────


def main():
    parser = argparse.ArgumentParser(
        description="Equivalence classes of the free idempotent rig on two generators"
    )
    subparsers = parser.add_subparsers(dest="mode", help="Run mode")

    subparsers.add_parser(
        "table", help="Print the monomial table and run the index/tuple self-checks"
    )

    run_p = subparsers.add_parser("run", help="Compute the quotient")
    run_p.add_argument(
        "--output", default=OUTPUT_FILE,
        help=f"Checkpoint file rewritten after every merge (default: {OUTPUT_FILE})",
    )
    run_p.add_argument(
        "--workers", type=int, default=1,
        help="Processes used to build the tables (default: 1)",
    )
    run_p.add_argument(
        "--chunk", type=int, default=DEFAULT_CHUNK,
        help=f"Table rows built per step (default: {DEFAULT_CHUNK})",
    )
    run_p.add_argument(
        "--cache", default=None,
        help="Directory for cached mtab.npy/atab.npy",
    )
    run_p.add_argument("--quiet", action="store_true", help="Only print the summary")
    run_p.add_argument(
        "--trace", action="store_true", help="Print every outer class the search visits"
    )

    args = parser.parse_args()

    if args.mode == "table":
        sys.exit(0 if run_preamble(IDEMPOTENT_RIG) else 1)

    elif args.mode == "run":
        try:
            status = run_quotient(args)
        except InvariantViolation as e:
            print(f"Failed: {e}", file=sys.stderr, flush=True)
            sys.exit(1)
        sys.exit(status)

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
