from __future__ import annotations

from typing import List, Sequence

import polars as pl

from .errors import ConfigurationError


def _ensure_polars_df(df: pl.DataFrame) -> pl.DataFrame:
    if isinstance(df, pl.DataFrame):
        return df

    # Lazy import so pandas remains optional
    pd = None
    if df.__class__.__module__.startswith("pandas"):
        try:
            import pandas as pd  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TypeError(
                "Pandas support requires installing pandas; install pandas to pass pandas.DataFrame"
            ) from exc
    if pd is not None and isinstance(df, pd.DataFrame):  # type: ignore[name-defined]
        try:
            return pl.from_pandas(df)
        except (ImportError, ModuleNotFoundError):
            # Without pyarrow: construct via Python lists
            data = {col: df[col].tolist() for col in df.columns}
            return pl.DataFrame(data)

    raise TypeError("Expected a polars.DataFrame or pandas.DataFrame")


def _require_columns(df: pl.DataFrame, columns: Sequence[str], table: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        missing_str = ", ".join(missing)
        raise ConfigurationError(f"Columns not found in {table} table: {missing_str}")


def _align_ids(longsheet: pl.DataFrame, d: pl.DataFrame, id: str) -> pl.DataFrame:
    """Cast the long table's id column to the primary table's id dtype."""
    dtype = d.schema[id]
    try:
        return longsheet.with_columns(pl.col(id).cast(dtype))
    except (pl.exceptions.InvalidOperationError, pl.exceptions.ComputeError) as exc:
        raise ConfigurationError(
            f"Id column '{id}' in the long table ({longsheet.schema[id]}) cannot be cast to "
            f"the primary table's id dtype ({dtype})"
        ) from exc


class Transformer:
    """Fit/transform interface for augmenting a primary table from a long table.

    Subclasses implement fit(df, longsheet) and transform(df, longsheet).
    """

    feature_names_in_: List[str] | None = None
    is_fitted_: bool = False

    def fit(self, df: pl.DataFrame, longsheet: pl.DataFrame) -> "Transformer":  # pragma: no cover
        raise NotImplementedError

    def transform(self, df: pl.DataFrame, longsheet: pl.DataFrame) -> pl.DataFrame:  # pragma: no cover
        raise NotImplementedError

    def fit_transform(self, df: pl.DataFrame, longsheet: pl.DataFrame) -> pl.DataFrame:
        return self.fit(df, longsheet).transform(df, longsheet)

    def get_feature_names_out(self) -> List[str]:
        names = getattr(self, "feature_names_out_", None)
        if names is None:
            return []
        return list(names)

    def to_dict(self) -> dict:
        # Learned state lives in attributes ending with '_'
        state = {}
        for k, v in self.__dict__.items():
            if not k.endswith("_"):
                continue
            if hasattr(v, "to_dict"):
                state[k] = {"__type__": type(v).__name__, "state": v.to_dict()}
            elif isinstance(v, (list, dict, str, int, float, bool, type(None))):
                state[k] = v
        state["__class__"] = self.__class__.__name__
        return state

    def from_dict(self, state: dict) -> "Transformer":
        loaders = getattr(self, "_state_loaders", {})
        for k, v in state.items():
            if k == "__class__":
                continue
            if isinstance(v, dict) and "__type__" in v:
                loader = loaders.get(v["__type__"])
                if loader is None:
                    raise TypeError(f"Cannot restore attribute '{k}' of type {v['__type__']}")
                setattr(self, k, loader(v["state"]))
            else:
                setattr(self, k, v)
        return self
