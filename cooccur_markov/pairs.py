"""Reader for batch output of the `pairs` null-model program.

`pairs` is run outside this package in batch mode (sequential swap,
all pairs printed, C-score, default confidence limits and iterations)
over the {stem}-pairs.txt files written by landscape_io. Its report holds
one block per input file:

    <file name line, flush left, containing "{stem}-">
    ...
    <header line containing "Sp1">
     <pair line>
     <pair line>
     ...
    <next flush-left line>

Pair lines are indented. After whitespace splitting, fields 2 and 3
(1-based) are the two species numbers and field 13 is the Z-score.
Species numbers refer to rows of the stripped, transposed input matrix.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Iterable, List, Union

import numpy as np
import pandas as pd

SPECIES_FIELDS = (1, 2)   # 0-based after str.split()
Z_FIELD = 12


def read_pairs_lines(path: Union[str, Path]) -> List[str]:
    """Read a `pairs` report, keeping leading whitespace."""
    with open(path) as f:
        return [line.rstrip('\n') for line in f]


def _block_start(lines: List[str], stem: str) -> int:
    marker = f"{stem}-"
    for i, line in enumerate(lines):
        if marker in line:
            return i
    raise KeyError(f"No block for '{stem}' in pairs output")


def parse_pairs_output(lines: Iterable[str], stem: str) -> pd.DataFrame:
    """Extract the pair Z-scores reported for one landscape.

    Args:
        lines: Lines of the `pairs` report.
        stem: Landscape stem, e.g. "binary-200-3".

    Returns:
        DataFrame with integer columns sp1 < sp2 and float column z.

    Raises:
        KeyError: if the report has no block for stem.
        ValueError: if the block has no Sp1 header.
    """
    lines = list(lines)
    start = _block_start(lines, stem)

    header = None
    for i in range(start + 1, len(lines)):
        line = lines[i]
        if "Sp1" in line:
            header = i
            break
        if line and not line[0].isspace():
            # next file's block
            break
    if header is None:
        raise ValueError(f"No Sp1 header in the '{stem}' block")

    records = []
    for line in lines[header + 1:]:
        if not line.strip():
            continue
        if not line[0].isspace():
            break
        fields = line.split()
        sp = sorted(int(fields[k]) for k in SPECIES_FIELDS)
        z = float(fields[Z_FIELD]) if len(fields) > Z_FIELD else math.nan
        records.append({'sp1': sp[0], 'sp2': sp[1], 'z': z})

    return pd.DataFrame.from_records(records, columns=['sp1', 'sp2', 'z'])


def order_pairs(results: pd.DataFrame, n_spp: int) -> pd.DataFrame:
    """Reorder parsed results to row-major upper-triangle order.

    Pairs missing from the report get z = NaN, so the output always has
    n_spp*(n_spp-1)/2 rows aligned with the truth vector.
    """
    rows, cols = np.triu_indices(n_spp, k=1)
    index = pd.MultiIndex.from_arrays([rows + 1, cols + 1], names=['sp1', 'sp2'])
    by_pair = results.drop_duplicates(['sp1', 'sp2']).set_index(['sp1', 'sp2'])
    ordered = by_pair.reindex(index)
    return ordered.reset_index()
