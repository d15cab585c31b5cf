from __future__ import annotations
import logging
from pathlib import Path
import pandas as pd

_LOG = logging.getLogger(__name__)

PENGUIN_COLUMNS = (
    "species",
    "island",
    "bill_length_mm",
    "bill_depth_mm",
    "flipper_length_mm",
    "body_mass_g",
    "sex",
)


def read_delimited(
    path: str | Path,
    sep: str = ",",
    index_col: str | None = None,
    **read_kwargs,
) -> pd.DataFrame:
    """Read a delimited text file into a DataFrame."""
    fp = Path(path)
    if not fp.is_file():
        raise FileNotFoundError(f"Data file not found: {fp}")
    df = pd.read_csv(fp, sep=sep, **read_kwargs)
    if index_col is not None:
        df = df.set_index(index_col, drop=False)
        df.index.name = None
    _LOG.info("Read %s rows x %s columns from %s", len(df), df.shape[1], fp)
    return df


def load_penguins(path: str | Path | None = None) -> pd.DataFrame:
    """Penguin morphology table.

    Reads ``path`` when given, otherwise seaborn's bundled ``penguins`` dataset.
    Column names are normalised to lower case so both sources line up.
    """
    if path is not None:
        df = read_delimited(path)
    else:
        import seaborn as sns

        df = sns.load_dataset("penguins")
        _LOG.info("Loaded seaborn penguins dataset (%s rows)", len(df))
    df = df.rename(columns={c: c.strip().lower() for c in df.columns})
    if "sex" in df.columns and not pd.api.types.is_numeric_dtype(df["sex"]):
        df["sex"] = df["sex"].str.title()
    return df
