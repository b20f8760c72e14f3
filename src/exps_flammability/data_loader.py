from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ID_COLUMNS: tuple[str, ...] = ("individual", "species", "site", "year_month")
MEASURE_COLUMNS: tuple[str, ...] = ("lfm", "mpa", "dry_wt", "sample_wt", "start_temp")
OUTCOME_COLUMNS: tuple[str, ...] = ("tti", "fh", "fd", "temp_max", "ignition")
REQUIRED_COLUMNS: tuple[str, ...] = (*ID_COLUMNS, *MEASURE_COLUMNS, *OUTCOME_COLUMNS)

Step = Callable[[pd.DataFrame], pd.DataFrame]


class Observation(BaseModel):
    """One flammability trial. Measurements may be missing; missing rows are dropped later."""

    individual: Optional[str] = None
    species: Optional[str] = None
    site: Optional[str] = None
    year_month: Optional[str] = None

    lfm: Optional[float] = None  # live fuel moisture, % dry weight
    mpa: Optional[float] = None  # water potential, MPa
    dry_wt: Optional[float] = None
    sample_wt: Optional[float] = None
    start_temp: Optional[float] = None

    tti: Optional[float] = None  # time to ignition, s
    fh: Optional[float] = None  # flame height, cm
    fd: Optional[float] = None  # flame duration, s
    temp_max: Optional[float] = None
    ignition: Optional[float] = None  # 1 if the sample ignited


def _as_id(value: object) -> Optional[str]:
    if pd.isna(value):  # type: ignore[arg-type]
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def validate_observations(df: pd.DataFrame) -> pd.DataFrame:
    """Validate each row against Observation and return a new, typed frame of the known columns."""
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Required observation columns missing: {missing}")

    rows = []
    for idx, record in enumerate(df[list(REQUIRED_COLUMNS)].to_dict(orient="records")):
        cleaned = {}
        for key, value in record.items():
            if key in ID_COLUMNS:
                cleaned[key] = _as_id(value)
            else:
                cleaned[key] = None if pd.isna(value) else value
        try:
            rows.append(Observation.model_validate(cleaned).model_dump())
        except ValidationError as e:
            raise ValueError(f"Malformed observation at row {idx}: {e}") from e

    out = pd.DataFrame(rows, columns=list(REQUIRED_COLUMNS))
    for col in (*MEASURE_COLUMNS, *OUTCOME_COLUMNS):
        out[col] = pd.to_numeric(out[col])
    return out


def load_observations(path: Union[str, Path]) -> pd.DataFrame:
    """Load a trials CSV and validate it."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Observation file not found at {path}")
    df = pd.read_csv(path)
    logger.info(f"Loaded {len(df)} trials from {path}")
    return validate_observations(df)


# ------------------------------------------------------------------------------
# Pipeline steps: each takes a frame and returns a new one
# ------------------------------------------------------------------------------


def drop_missing(df: pd.DataFrame, columns: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """Drop rows with NA in the given columns (all columns if None)."""
    subset = list(columns) if columns is not None else None
    out = df.dropna(subset=subset).reset_index(drop=True)
    dropped = len(df) - len(out)
    if dropped:
        logger.info(f"Dropped {dropped} rows with missing values in {subset or 'any column'}")
    return out


def filter_species(df: pd.DataFrame, species: Optional[str]) -> pd.DataFrame:
    """Keep one species; no-op when species is None."""
    if species is None:
        return df.copy()
    out = df[df["species"] == species].reset_index(drop=True)
    if out.empty:
        known = sorted(df["species"].dropna().unique().tolist())
        raise ValueError(f"No trials for species {species!r}; available: {known}")
    return out


def filter_ignited(df: pd.DataFrame) -> pd.DataFrame:
    """Keep trials that ignited."""
    return df[df["ignition"] == 1].reset_index(drop=True)


def scale_columns(df: pd.DataFrame, columns: Sequence[str], suffix: str = "_scaled", ddof: int = 1) -> pd.DataFrame:
    """Add z-scored copies of columns as <col><suffix>.

    ddof=1 matches R's scale(). Constant columns scale to 0.
    """
    scaled = df.copy()
    for col in columns:
        mean = scaled[col].mean()
        std = scaled[col].std(ddof=ddof)
        if std == 0 or np.isnan(std):
            scaled[f"{col}{suffix}"] = 0.0
        else:
            scaled[f"{col}{suffix}"] = (scaled[col] - mean) / std
    return scaled


def validate_non_empty(df: pd.DataFrame) -> None:
    """Raise if DataFrame is empty."""
    if df.empty:
        raise ValueError("Observation table is empty after cleaning.")


def apply_pipeline(df: pd.DataFrame, steps: Sequence[Step]) -> pd.DataFrame:
    """Run steps in order; the input frame is never modified."""
    out = df
    for step in steps:
        out = step(out)
    return out


def prepare_observations(
    df: pd.DataFrame,
    required_columns: Iterable[str],
    species: Optional[str] = None,
    ignited_only: bool = True,
    scale: Sequence[str] = MEASURE_COLUMNS,
) -> pd.DataFrame:
    """Filter, drop NA in the required raw columns, then scale measurements."""
    required = list(required_columns)
    steps: List[Step] = [lambda d: filter_species(d, species)]
    if ignited_only:
        steps.append(filter_ignited)
    steps.append(lambda d: drop_missing(d, required))
    steps.append(lambda d: scale_columns(d, scale))
    processed = apply_pipeline(df, steps)
    validate_non_empty(processed)
    return processed


def simulate_observations(
    n_species: int = 2,
    n_individuals: int = 12,
    n_trials: int = 6,
    seed: int = 0,
) -> pd.DataFrame:
    """Synthetic trials with a per-individual intercept and lfm computed from dry weight."""
    rng = np.random.default_rng(seed)
    months = ["2020-09", "2020-10", "2020-11", "2021-01"]
    rows = []
    for s in range(n_species):
        species = f"sp{s + 1}"
        for i in range(n_individuals):
            individual = f"{species}_{i + 1:02d}"
            site = f"site{i % 2 + 1}"
            ind_effect = rng.normal(scale=4.0)
            ind_mpa = rng.normal(-3.0, 1.0)
            for _ in range(n_trials):
                mpa = ind_mpa + rng.normal(scale=0.8)
                lfm = max(40.0, 110.0 + 12.0 * mpa + rng.normal(scale=8.0))
                sample_wt = rng.normal(0.6, 0.05)
                dry_wt = sample_wt / (1.0 + lfm / 100.0)
                start_temp = rng.normal(110.0, 15.0)
                ignited = rng.random() < 1.0 / (1.0 + np.exp((lfm - 140.0) / 20.0))
                tti = 25.0 - 3.0 * mpa - 0.05 * start_temp + 10.0 * sample_wt + ind_effect + rng.normal(scale=2.0)
                rows.append(
                    {
                        "individual": individual,
                        "species": species,
                        "site": site,
                        "year_month": months[int(rng.integers(len(months)))],
                        "lfm": lfm,
                        "mpa": mpa,
                        "dry_wt": dry_wt,
                        "sample_wt": sample_wt,
                        "start_temp": start_temp,
                        "tti": tti if ignited else np.nan,
                        "fh": 40.0 - 0.15 * lfm + 0.5 * ind_effect + rng.normal(scale=3.0) if ignited else np.nan,
                        "fd": 12.0 + 1.5 * mpa + 0.3 * ind_effect + rng.normal(scale=1.5) if ignited else np.nan,
                        "temp_max": 500.0 - 1.2 * lfm + 0.5 * start_temp + 5.0 * ind_effect + rng.normal(scale=20.0) if ignited else np.nan,
                        "ignition": 1.0 if ignited else 0.0,
                    }
                )
    return pd.DataFrame(rows, columns=list(REQUIRED_COLUMNS))
