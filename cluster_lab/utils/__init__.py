from __future__ import annotations
from .io import PENGUIN_COLUMNS, read_delimited, load_penguins
from .validate import expect_columns, expect_non_empty, expect_numeric, expect_finite

__all__ = [
    "PENGUIN_COLUMNS", "read_delimited", "load_penguins",
    "expect_columns", "expect_non_empty", "expect_numeric", "expect_finite",
]
