"""
Design matrix for the location-type model:
  const | borough dummies (reference level dropped) | hour (numeric)
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.preprocessing import OneHotEncoder

from shooting_analysis.utils.errors import InvalidReferenceLevel


def most_frequent_level(values: pd.Series):
    """Most frequent level; ties go to the lexicographically smallest label."""
    counts = values.value_counts(dropna=True)
    if len(counts) == 0:
        return None
    top = counts.max()
    return sorted(str(level) for level in counts[counts == top].index)[0]


def ordered_levels(values: pd.Series, reference) -> list[str]:
    """Reference level first, the rest sorted."""
    levels = sorted(set(values.dropna().astype(str)))
    if reference not in levels:
        raise InvalidReferenceLevel(f"Reference level {reference!r} not found among {levels}")
    return [reference] + [lvl for lvl in levels if lvl != reference]


@dataclass
class BoroughEncoding:
    levels: list[str]
    encoder: OneHotEncoder | None = None

    @property
    def reference(self) -> str:
        return self.levels[0]

    @property
    def feature_names(self) -> list[str]:
        return ["const"] + [f"borough_{lvl}" for lvl in self.levels[1:]] + ["hour"]

    def transform(self, prepared: pd.DataFrame) -> np.ndarray:
        boroughs = prepared["borough"].astype(str)
        unseen = sorted(set(boroughs) - set(self.levels))
        if unseen:
            raise InvalidReferenceLevel(f"Boroughs not seen during fitting: {unseen}")

        n = len(prepared)
        const = np.ones((n, 1))
        hour = prepared["hour"].to_numpy(dtype=float).reshape(-1, 1)
        if self.encoder is None:
            return np.hstack([const, hour])

        dummies = self.encoder.transform(boroughs.to_frame()).astype(float)
        return np.hstack([const, dummies, hour])


def fit_borough_encoding(prepared: pd.DataFrame, reference_borough=None) -> BoroughEncoding:
    """
    Dummy-encode borough with `reference_borough` dropped
    (default: the most frequent borough).
    """
    boroughs = prepared["borough"].astype(str)
    if reference_borough is None:
        reference_borough = most_frequent_level(boroughs)
    levels = ordered_levels(boroughs, reference_borough)

    # One level only: nothing to encode beyond the intercept
    if len(levels) == 1:
        return BoroughEncoding(levels=levels)

    encoder = OneHotEncoder(categories=[levels], drop="first", sparse_output=False)
    encoder.fit(boroughs.to_frame())
    return BoroughEncoding(levels=levels, encoder=encoder)


def build_design_matrix(prepared: pd.DataFrame, reference_borough=None) -> tuple[np.ndarray, list[str], BoroughEncoding]:
    """
    Returns:
      (X, feature_names, encoding)
    """
    encoding = fit_borough_encoding(prepared, reference_borough)
    X = encoding.transform(prepared)
    return X, encoding.feature_names, encoding
