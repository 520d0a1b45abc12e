"""
Text report of a partition.

The report has two brace-delimited lists separated by a blank line: the
minimum element of each class, then every class in full.  Classes are
ordered by their minimum element and members are sorted, so the same
partition always prints the same text.
"""

from __future__ import annotations

import sys
from pathlib import Path

from .monomials import MonomialAlgebra
from .partition import Partition

OUTPUT_FILE = "IdempotentRig.txt"


def sorted_classes(partition: Partition) -> list[list[int]]:
    """Each class sorted ascending, classes ordered by their minimum element."""
    return sorted((sorted(members) for members in partition.classes().values()),
                  key=lambda members: members[0])


def format_partition(partition: Partition, algebra: MonomialAlgebra) -> str:
    classes = sorted_classes(partition)
    reps = ",\n".join(algebra.format_index(members[0]) for members in classes)
    full = ",\n".join(
        "{" + ", ".join(algebra.format_index(e) for e in members) + "}"
        for members in classes
    )
    return "{" + reps + "}\n\n{" + full + "}\n"


def write_checkpoint(text: str, path: str | Path = OUTPUT_FILE) -> bool:
    """
    Overwrite ``path`` with ``text``.

    If the file cannot be written the report goes to the console instead and
    the caller carries on; returns whether the file write succeeded.
    """
    try:
        with open(path, "w") as fp:
            fp.write(text)
    except OSError as e:
        print(f"Error opening output file {path} to write: {e}", file=sys.stderr, flush=True)
        print("Sending output to console:", flush=True)
        sys.stdout.write(text)
        sys.stdout.flush()
        return False
    return True
