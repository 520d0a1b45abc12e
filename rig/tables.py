"""
Product and sum tables for the idempotent rig.

Builds MTAB[x, y] = x*y and ATAB[x, y] = x+y over every ordered pair of
canonical elements as dense uint16 numpy arrays.  For the two-generator rig
each table is 16384x16384 (512 MiB).  Rows are independent, so the outer
element range can be split across worker processes.
"""

from __future__ import annotations

import sys
import time
from multiprocessing import Pool
from pathlib import Path

import numpy as np

from .monomials import MonomialAlgebra, normalize

DEFAULT_CHUNK = 128
TABLE_DTYPE = np.uint16

MTAB_FILE = "mtab.npy"
ATAB_FILE = "atab.npy"


# ---------------------------------------------------------------------------
# Row construction
# ---------------------------------------------------------------------------

def build_rows(algebra: MonomialAlgebra, start: int, stop: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Build MTAB and ATAB rows start..stop-1.

    Slot k of x*y is t(x) @ W_k @ t(y), with W_k the indicator of monomial
    pairs whose product is m_k.  Every partial sum is an integer below 2^53,
    so the float matmul is exact.
    """
    tuples = algebra.tuples()
    left = tuples[start:stop]
    rows = stop - start
    n = algebra.num_elements

    right_f = tuples.T.astype(np.float64)
    left_f = left.astype(np.float64)
    prod = np.empty((rows, n, algebra.num_monomials), dtype=np.int64)
    for k, w in enumerate(algebra.slot_weights()):
        prod[:, :, k] = np.rint(left_f @ (w @ right_f)).astype(np.int64)
    mrows = algebra.encode(normalize(prod)).astype(TABLE_DTYPE)

    summed = left[:, None, :] + tuples[None, :, :]
    arows = algebra.encode(normalize(summed)).astype(TABLE_DTYPE)
    return mrows, arows


def _build_chunk(job):
    algebra, start, stop = job
    mrows, arows = build_rows(algebra, start, stop)
    return start, mrows, arows


def build_tables(algebra: MonomialAlgebra, workers: int = 1,
                 chunk: int = DEFAULT_CHUNK,
                 verbose: bool = False) -> tuple[np.ndarray, np.ndarray]:
    """Build the full (MTAB, ATAB) pair. Both are returned read-only."""
    n = algebra.num_elements
    if chunk < 1:
        raise ValueError(f"chunk must be positive, got {chunk}")
    mtab = np.empty((n, n), dtype=TABLE_DTYPE)
    atab = np.empty((n, n), dtype=TABLE_DTYPE)
    jobs = [(algebra, s, min(s + chunk, n)) for s in range(0, n, chunk)]

    t0 = time.time()

    def store(result):
        start, mrows, arows = result
        mtab[start:start + len(mrows)] = mrows
        atab[start:start + len(arows)] = arows
        if verbose:
            print(f"x1={start} / {n}  ({time.time() - t0:.1f}s)", flush=True)

    if workers > 1 and len(jobs) > 1:
        with Pool(processes=workers) as pool:
            for result in pool.imap(_build_chunk, jobs):
                store(result)
    else:
        for job in jobs:
            store(_build_chunk(job))

    mtab.flags.writeable = False
    atab.flags.writeable = False
    return mtab, atab


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

def save_tables(directory: str | Path, mtab: np.ndarray, atab: np.ndarray) -> Path:
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    np.save(directory / MTAB_FILE, mtab)
    np.save(directory / ATAB_FILE, atab)
    return directory


def load_tables(directory: str | Path,
                algebra: MonomialAlgebra) -> tuple[np.ndarray, np.ndarray] | None:
    """Memory-map cached tables read-only; None if absent or the wrong shape."""
    directory = Path(directory)
    mpath, apath = directory / MTAB_FILE, directory / ATAB_FILE
    if not (mpath.exists() and apath.exists()):
        return None
    mtab = np.load(mpath, mmap_mode="r")
    atab = np.load(apath, mmap_mode="r")
    shape = (algebra.num_elements, algebra.num_elements)
    if mtab.shape != shape or atab.shape != shape:
        print(f"Cached tables in {directory} have shape {mtab.shape}, expected {shape}; ignoring",
              file=sys.stderr, flush=True)
        return None
    return mtab, atab
