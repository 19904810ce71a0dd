from pathlib import Path
from typing import Optional

import pandas as pd


def load_election_raw(path: Path, nrows: Optional[int] = None) -> pd.DataFrame:
    path = Path(path)
    if path.suffix.lower() == ".csv":
        return pd.read_csv(path, nrows=nrows)
    return pd.read_excel(path, nrows=nrows)
