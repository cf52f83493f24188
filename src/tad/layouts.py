"""
Result column layouts per aggregation.

Each aggregation folds in different grouping keys, so the width of a result
row and the positions of the throughput and anomaly columns depend on the
job's aggregation. The mapping is closed: it is selected from the stored
aggregation value, never inferred from the data.
"""

from dataclasses import dataclass
from typing import Any, Sequence

import pandas as pd

from .errors import SchemaMismatch
from .models import Aggregation


@dataclass(frozen=True)
class ResultLayout:
    """Column layout of the result rows for one aggregation"""

    agg_type: str
    columns: tuple[str, ...]

    @property
    def width(self) -> int:
        return len(self.columns)

    @property
    def throughput_index(self) -> int:
        return self.columns.index("throughput")

    @property
    def anomaly_index(self) -> int:
        return self.columns.index("anomaly")


_TAIL = ("throughput", "aggType", "algoType", "algoCalc", "anomaly")

LAYOUTS: dict[Aggregation, ResultLayout] = {
    Aggregation.NONE: ResultLayout(
        agg_type="None",
        columns=(
            "id",
            "sourceIP",
            "sourceTransportPort",
            "destinationIP",
            "destinationTransportPort",
            "flowStartSeconds",
            "flowEndSeconds",
            *_TAIL,
        ),
    ),
    Aggregation.POD_BY_NAME: ResultLayout(
        agg_type="pod",
        columns=("id", "podNamespace", "podName", "direction", "flowEndSeconds", *_TAIL),
    ),
    Aggregation.POD_BY_LABEL: ResultLayout(
        agg_type="pod",
        columns=("id", "podNamespace", "podLabels", "flowEndSeconds", *_TAIL),
    ),
    Aggregation.SERVICE: ResultLayout(
        agg_type="svc",
        columns=("id", "destinationServicePortName", "flowEndSeconds", *_TAIL),
    ),
    Aggregation.EXTERNAL: ResultLayout(
        agg_type="external",
        columns=("id", "destinationIP", "flowEndSeconds", *_TAIL),
    ),
}


def layout_for(aggregation: Aggregation) -> ResultLayout:
    return LAYOUTS[aggregation]


def shape_results(
    job_id: str, aggregation: Aggregation, rows: Sequence[Sequence[Any]]
) -> pd.DataFrame:
    """Lay out raw result rows with the column header of `aggregation`

    Raises:
        SchemaMismatch: If any row's width differs from the layout. Rows are
            never truncated or padded.
    """
    layout = layout_for(aggregation)
    for position, row in enumerate(rows):
        if len(row) != layout.width:
            raise SchemaMismatch(
                f"Result row {position} has {len(row)} columns, "
                f"aggregation '{aggregation.value}' expects {layout.width}",
                job_id=job_id,
            )
    return pd.DataFrame([list(row) for row in rows], columns=list(layout.columns))
