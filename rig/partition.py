"""
Partition engine: the coarsest congruence on the idempotent rig.

Every element starts in the class labelled by its square (if x^2 = y^2 then
x = x^2 = y^2 = y).  The closure loop then looks for a defect, a pair of
equivalent inputs x1 ~ x2, y1 ~ y2 whose products or sums land in different
classes, merges the two offending classes, and starts again.  When no defect
remains the partition is a congruence for both operations.

Classes live in an insertion-ordered dict keyed by label (one of the class's
own members); ``eqc[e]`` is the label of the class holding ``e``.  Dict order
is the registry traversal order.

The defect search dominates the run time.  For each outer class X the search
first asks whether every x*y (and x+y) with y in a class Y lands in a single
class; only a class that fails that test is searched pair by pair, in the
fixed order X by size, x1, x2, Y by registry order, y1, y2.
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from typing import Callable

import numpy as np

# Upper bound on table cells gathered per numpy step
ROW_BUDGET = 1 << 22

MUL = "mul"
ADD = "add"


class InvariantViolation(AssertionError):
    """The class registry and the membership map disagree."""


@dataclass(frozen=True)
class Defect:
    """x1 ~ x2 and y1 ~ y2, but x1 op y1 lies in ``target`` and x2 op y2 in ``source``."""
    x1: int
    x2: int
    y1: int
    y2: int
    op: str
    target: int
    source: int


class Partition:
    """
    Disjoint classes covering every element of an MTAB/ATAB pair.

    Args:
        mtab, atab: square element tables, read only.
        verbose: print seeding, fixup and merge progress.
        trace: also print one line per outer class examined by the search.
    """

    def __init__(self, mtab: np.ndarray, atab: np.ndarray,
                 verbose: bool = False, trace: bool = False):
        if mtab.ndim != 2 or mtab.shape[0] != mtab.shape[1]:
            raise ValueError(f"MTAB must be square, got shape {mtab.shape}")
        if atab.shape != mtab.shape:
            raise ValueError(f"ATAB shape {atab.shape} does not match MTAB {mtab.shape}")
        self.mtab = mtab
        self.atab = atab
        self.n = mtab.shape[0]
        self.eqc = np.full(self.n, -1, dtype=np.int32)
        self._classes: dict[int, list[int]] = {}
        self.merges = 0
        self.verbose = verbose
        self.trace = trace

    # -------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._classes)

    def labels(self) -> list[int]:
        return list(self._classes)

    def members(self, label: int) -> tuple[int, ...]:
        return tuple(self._classes[label])

    def classes(self) -> dict[int, tuple[int, ...]]:
        return {label: tuple(m) for label, m in self._classes.items()}

    def class_of(self, element: int) -> int:
        return int(self.eqc[element])

    def is_congruence(self) -> bool:
        return self.find_defect() is None

    # -------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------

    def seed(self) -> int:
        """Put each x in the class labelled x^2. Returns the class count."""
        squares = np.diagonal(self.mtab).astype(np.int32)
        self._classes = {}
        for x, sq in enumerate(squares.tolist()):
            self._classes.setdefault(sq, []).append(x)
        self.eqc = squares.copy()
        self.merges = 0
        if self.verbose:
            print(f"Initially created {len(self)} equivalence classes "
                  f"based on elements having the same square", flush=True)
        return len(self)

    def fix_labels(self) -> list[tuple[int, int, int]]:
        """
        Make every label a member of its own class.

        A label L with eqc[L] != L absorbs the class currently holding L.
        Absorbing moves labels around, so passes repeat until one finds
        nothing to fix.  Returns (checked, fixed, classes) per pass.
        """
        stats = []
        for pass_num in itertools.count():
            checked = fixed = 0
            for label in list(self._classes):
                if label not in self._classes:
                    continue
                checked += 1
                holder = int(self.eqc[label])
                if holder != label:
                    fixed += 1
                    self.merge(label, holder)
            stats.append((checked, fixed, len(self)))
            if self.verbose:
                print(f"Pass {pass_num}: equivalence classes checked = {checked}, "
                      f"those where x^2 not in own class = {fixed}", flush=True)
                print(f"We now have {len(self)} equivalence classes", flush=True)
            if fixed == 0:
                return stats

    # -------------------------------------------------------------------
    # Mutation and validation
    # -------------------------------------------------------------------

    def merge(self, target: int, source: int) -> None:
        """Absorb class ``source`` into class ``target`` and retire ``source``."""
        if target == source:
            raise InvariantViolation(f"Cannot merge class {target} into itself")
        if target not in self._classes or source not in self._classes:
            raise InvariantViolation(f"Merge of unknown class: {source} -> {target}")
        absorbed = self._classes.pop(source)
        self._classes[target].extend(absorbed)
        self.eqc[absorbed] = target

    def check(self) -> int:
        """
        Validate the registry against eqc.  Returns the number of elements
        checked; raises InvariantViolation on any mismatch.
        """
        if not self._classes:
            raise InvariantViolation("Partition has no classes")
        labels = np.fromiter(self._classes, dtype=np.int64, count=len(self._classes))
        sizes = np.array([len(m) for m in self._classes.values()], dtype=np.int64)
        if np.any(sizes == 0):
            empty = int(labels[np.argmax(sizes == 0)])
            raise InvariantViolation(f"Class {empty} is empty")
        elements = np.fromiter(itertools.chain.from_iterable(self._classes.values()),
                               dtype=np.int64, count=int(sizes.sum()))
        if len(elements) != self.n:
            raise InvariantViolation(f"Classes hold {len(elements)} elements, expected {self.n}")
        counts = np.bincount(elements, minlength=self.n)
        if np.any(counts != 1):
            e = int(np.argmax(counts != 1))
            raise InvariantViolation(f"Element {e} appears in {counts[e]} classes")
        expected = np.repeat(labels, sizes)
        wrong = self.eqc[elements] != expected
        if np.any(wrong):
            k = int(np.argmax(wrong))
            raise InvariantViolation(
                f"Element {elements[k]} of class {expected[k]} has eqc = {self.eqc[elements[k]]}")
        return len(elements)

    # -------------------------------------------------------------------
    # Defect search
    # -------------------------------------------------------------------

    def _layout(self):
        """Registry as (labels, sizes, order, starts): members concatenated in registry order."""
        labels = list(self._classes)
        sizes = np.array([len(self._classes[label]) for label in labels], dtype=np.int64)
        order = np.fromiter(itertools.chain.from_iterable(self._classes.values()),
                            dtype=np.int64, count=int(sizes.sum()))
        starts = np.concatenate(([0], np.cumsum(sizes)[:-1])).astype(np.int64)
        return labels, sizes, order, starts

    def _bounds(self, table, rows, order, starts):
        """Per row and per Y class: min and max class of row*y over y in Y."""
        vals = self.eqc[table[rows][:, order]]
        return (np.minimum.reduceat(vals, starts, axis=1),
                np.maximum.reduceat(vals, starts, axis=1))

    def _dirty(self, groups, order, starts) -> np.ndarray:
        """For each group of X members, whether some defect has its x1, x2 in the group."""
        budget = max(1, ROW_BUDGET // self.n)
        dirty = np.zeros(len(groups), dtype=bool)
        if len(groups) == 1:
            xs = groups[0]
            for table in (self.mtab, self.atab):
                lo = hi = None
                for r0 in range(0, len(xs), budget):
                    rlo, rhi = self._bounds(table, xs[r0:r0 + budget], order, starts)
                    rlo, rhi = rlo.min(axis=0), rhi.max(axis=0)
                    lo = rlo if lo is None else np.minimum(lo, rlo)
                    hi = rhi if hi is None else np.maximum(hi, rhi)
                dirty[0] |= bool(np.any(lo != hi))
            return dirty

        rows = np.concatenate(groups)
        local = np.concatenate(([0], np.cumsum([len(g) for g in groups])[:-1]))
        for table in (self.mtab, self.atab):
            lo, hi = self._bounds(table, rows, order, starts)
            blo = np.minimum.reduceat(lo, local, axis=0)
            bhi = np.maximum.reduceat(hi, local, axis=0)
            dirty |= np.any(blo != bhi, axis=1)
        return dirty

    def _batches(self, positions, sizes):
        """Group consecutive outer classes so each numpy step stays under ROW_BUDGET."""
        budget = max(1, ROW_BUDGET // self.n)
        batch, rows = [], 0
        for pos in positions:
            size = int(sizes[pos])
            if batch and rows + size > budget:
                yield batch
                batch, rows = [], 0
            batch.append(pos)
            rows += size
        if batch:
            yield batch

    def find_defect(self) -> Defect | None:
        """First defect in the search order, or None if the partition is a congruence."""
        labels, sizes, order, starts = self._layout()
        # Stable sort keeps registry order among classes of equal size
        by_size = sorted(range(len(labels)), key=lambda pos: sizes[pos])
        t0 = time.time()
        outer = 0
        for batch in self._batches(by_size, sizes):
            groups = [np.asarray(self._classes[labels[pos]], dtype=np.int64) for pos in batch]
            dirty = self._dirty(groups, order, starts)
            for pos, xs, is_dirty in zip(batch, groups, dirty):
                outer += 1
                if self.trace:
                    print(f"passCount = {self.merges}, outerCount = {outer} / {len(labels)}, "
                          f"elements = {len(xs)}", flush=True)
                if is_dirty:
                    defect = self._locate(xs, sizes, order, starts)
                    if defect is None:
                        raise InvariantViolation(
                            f"Class {labels[pos]} flagged inconsistent but no witness found")
                    if self.verbose:
                        print(f"Pass {self.merges}: defect in class {labels[pos]} "
                              f"({len(xs)} elements, outer {outer} / {len(labels)}, "
                              f"{time.time() - t0:.1f}s)", flush=True)
                    return defect
        return None

    def _locate(self, xs, sizes, order, starts) -> Defect | None:
        """Witness in x1, x2, Y, y1, y2 order for an outer class known to be inconsistent."""
        budget = max(1, ROW_BUDGET // self.n)
        for x1 in xs.tolist():
            am = self.eqc[self.mtab[x1][order]]
            aa = self.eqc[self.atab[x1][order]]
            am_lo, am_hi = np.minimum.reduceat(am, starts), np.maximum.reduceat(am, starts)
            aa_lo, aa_hi = np.minimum.reduceat(aa, starts), np.maximum.reduceat(aa, starts)
            a_const = (am_lo == am_hi) & (aa_lo == aa_hi)
            for r0 in range(0, len(xs), budget):
                x2s = xs[r0:r0 + budget]
                bm_lo, bm_hi = self._bounds(self.mtab, x2s, order, starts)
                ba_lo, ba_hi = self._bounds(self.atab, x2s, order, starts)
                ok = (a_const & (bm_lo == bm_hi) & (ba_lo == ba_hi)
                      & (am_lo == bm_lo) & (aa_lo == ba_lo))
                bad = np.argwhere(~ok)
                if len(bad) == 0:
                    continue
                r, s = (int(v) for v in bad[0])
                x2 = int(x2s[r])
                seg = slice(int(starts[s]), int(starts[s] + sizes[s]))
                ys = order[seg]
                bm = self.eqc[self.mtab[x2][ys]]
                ba = self.eqc[self.atab[x2][ys]]
                return self._witness(x1, x2, ys, am[seg], aa[seg], bm, ba)
        return None

    @staticmethod
    def _witness(x1, x2, ys, am, aa, bm, ba) -> Defect:
        # y1: first member with some y2 disagreeing; any y1 works unless x2's side is constant
        if bm.min() == bm.max() and ba.min() == ba.max():
            q1 = int(np.flatnonzero((am != bm[0]) | (aa != ba[0]))[0])
        else:
            q1 = 0
        q2 = int(np.flatnonzero((bm != am[q1]) | (ba != aa[q1]))[0])
        if am[q1] != bm[q2]:
            op, target, source = MUL, int(am[q1]), int(bm[q2])
        else:
            op, target, source = ADD, int(aa[q1]), int(ba[q2])
        return Defect(x1, x2, int(ys[q1]), int(ys[q2]), op, target, source)

    # -------------------------------------------------------------------
    # Closure
    # -------------------------------------------------------------------

    def close(self, on_merge: Callable[["Partition"], None] | None = None) -> int:
        """
        Merge defects until the partition is a congruence.

        ``on_merge`` runs after every validated merge (checkpointing).
        Returns the number of merges performed.
        """
        start = self.merges
        while True:
            defect = self.find_defect()
            if defect is None:
                break
            before = len(self)
            if self.verbose:
                print(f"Merging classes {defect.source} -> {defect.target} "
                      f"({defect.op}: x1={defect.x1}, x2={defect.x2}, "
                      f"y1={defect.y1}, y2={defect.y2})", flush=True)
            self.merge(defect.target, defect.source)
            self.check()
            self.merges += 1
            if len(self) != before - 1:
                raise InvariantViolation(f"Class count went from {before} to {len(self)}")
            if on_merge is not None:
                on_merge(self)
        if self.verbose:
            print(f"We now have {len(self)} equivalence classes", flush=True)
        return self.merges - start
