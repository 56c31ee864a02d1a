"""Loading of recorded sensor data."""

from pathlib import Path
from typing import Sequence, Union
import logging
import numpy as np

#: Column headers of the vehicle test-drive recordings.
VEHICLE_COLUMNS = ("ax[m/s^2]", "ay[m/s^2]", "vx[m/s]", "vy[m/s]", "psi[rad]")

def load_sensor_recording(path: Union[str, Path],
                          columns: Sequence[str] = VEHICLE_COLUMNS,
                          delimiter: str = ",") -> np.ndarray:
    """
    Read selected columns of a headered CSV file.

    Args:
        path: CSV file with one header line
        columns: Header names to extract, in output order; extra columns are ignored
        delimiter: Field separator

    Returns:
        np.ndarray: (rows, len(columns)) observation matrix
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as fh:
        header = [name.strip() for name in fh.readline().split(delimiter)]

    missing = [name for name in columns if name not in header]
    if missing:
        raise KeyError(f"Columns {missing} not found in {path}")

    indices = [header.index(name) for name in columns]
    data = np.loadtxt(path, delimiter=delimiter, skiprows=1, usecols=indices, ndmin=2)
    logging.info(f"Loaded {data.shape[0]} rows from {path.name}")
    return data
