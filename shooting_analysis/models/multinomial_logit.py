"""
MISSION: The Modeling Layer.
Multinomial logistic regression of incident location type on borough and
hour of day, fitted by Newton-Raphson (IRLS) from an all-zero start so that
reruns are bit-for-bit reproducible.

Model:
  P(y = k | x) = exp(b_k . x) / (1 + sum_{j != ref} exp(b_j . x)),  b_ref = 0

Outputs:
  - coefficient / odds-ratio table keyed by (category, predictor)
  - Wald standard errors, z, p-values and 95% odds-ratio intervals
  - fit statistics (log-likelihood, McFadden R^2, LR test, AIC, BIC)

Numerical trouble is reported, never hidden:
  - ConvergenceFailure when the iteration cap is hit or the line search
    stalls short of a zero score (last iterate attached)
  - PotentialSeparation warning when |coef| exceeds the sanity bound
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy import stats
from scipy.special import logsumexp

from shooting_analysis.features.design_matrix import (
    BoroughEncoding,
    build_design_matrix,
    most_frequent_level,
    ordered_levels,
)
from shooting_analysis.features.build_features import PREPARED_COLUMNS
from shooting_analysis.utils.errors import (
    ConvergenceFailure,
    DegenerateOutcome,
    InvalidPreparedRow,
    MissingColumnError,
    PotentialSeparation,
)

DEFAULT_MAX_ITER = 100
DEFAULT_TOL = 1e-6
DEFAULT_SEPARATION_BOUND = 20.0
MAX_STEP_HALVINGS = 30

Z_95 = float(stats.norm.ppf(0.975))


# ----------------------------
# Likelihood pieces
# ----------------------------

def _log_probs(X: np.ndarray, B: np.ndarray) -> np.ndarray:
    """Log class probabilities (n, K); column 0 is the reference with logit fixed at 0."""
    eta = X @ B
    logits = np.hstack([np.zeros((X.shape[0], 1)), eta])
    return logits - logsumexp(logits, axis=1, keepdims=True)


def _log_likelihood(X: np.ndarray, y: np.ndarray, B: np.ndarray) -> float:
    logp = _log_probs(X, B)
    return float(logp[np.arange(len(y)), y].sum())


def _score_and_information(X: np.ndarray, Y: np.ndarray, P: np.ndarray):
    """
    Score vector and observed information for the stacked parameters.
    Y, P exclude the reference column; parameters are stacked category-major
    (index k * p + a).
    """
    p = X.shape[1]
    m = Y.shape[1]
    score = (X.T @ (Y - P)).T.reshape(-1)

    info = np.empty((m * p, m * p))
    for j in range(m):
        for k in range(m):
            w = P[:, j] * (float(j == k) - P[:, k])
            info[j * p:(j + 1) * p, k * p:(k + 1) * p] = X.T @ (X * w[:, None])
    return score, info


def null_log_likelihood(y: np.ndarray, n_levels: int) -> float:
    """Intercept-only log-likelihood: sum_k n_k log(n_k / n)."""
    counts = np.bincount(y, minlength=n_levels).astype(float)
    counts = counts[counts > 0]
    return float(np.sum(counts * np.log(counts / counts.sum())))


# ----------------------------
# Fitted model
# ----------------------------

@dataclass
class FittedModel:
    reference_category: str
    categories: list[str]
    feature_names: list[str]
    coefficients: np.ndarray
    std_errors: np.ndarray
    log_likelihood: float
    null_log_likelihood: float
    n_obs: int
    n_iter: int
    converged: bool
    separation_bound: float
    encoding: BoroughEncoding

    @property
    def reference_borough(self) -> str:
        return self.encoding.reference

    @property
    def outcome_levels(self) -> list[str]:
        return [self.reference_category] + list(self.categories)

    def coefficient_frame(self) -> pd.DataFrame:
        """Coefficients, one row per non-reference category."""
        return pd.DataFrame(self.coefficients, index=pd.Index(self.categories, name="category"),
                            columns=self.feature_names)

    def odds_ratios(self) -> pd.DataFrame:
        return np.exp(self.coefficient_frame())

    def separation_flags(self) -> pd.DataFrame:
        return self.coefficient_frame().abs() > self.separation_bound

    def coefficient_table(self, sort_by: str | None = None) -> pd.DataFrame:
        """
        Long table keyed by (category, predictor):
        coef, std_err, z, p_value, odds_ratio, or_lower_95, or_upper_95, potential_separation.
        OR > 1 => higher odds of that location type vs the reference.
        """
        rows = []
        for i, category in enumerate(self.categories):
            for a, predictor in enumerate(self.feature_names):
                coef = float(self.coefficients[i, a])
                se = float(self.std_errors[i, a])
                z = coef / se if np.isfinite(se) and se > 0 else np.nan
                rows.append({
                    "category": category,
                    "predictor": predictor,
                    "coef": coef,
                    "std_err": se,
                    "z": z,
                    "p_value": float(2 * stats.norm.sf(abs(z))) if np.isfinite(z) else np.nan,
                    "odds_ratio": float(np.exp(coef)),
                    "or_lower_95": float(np.exp(coef - Z_95 * se)),
                    "or_upper_95": float(np.exp(coef + Z_95 * se)),
                    "potential_separation": bool(abs(coef) > self.separation_bound),
                })

        out = pd.DataFrame(rows)
        if sort_by is not None and sort_by in out.columns:
            out = out.sort_values(sort_by, ascending=True, kind="mergesort").reset_index(drop=True)
        return out

    def fit_stats(self) -> dict:
        n_params = int(self.coefficients.size)
        df_model = len(self.categories) * (len(self.feature_names) - 1)
        llr = 2.0 * (self.log_likelihood - self.null_log_likelihood)
        return {
            "log_likelihood": float(self.log_likelihood),
            "null_log_likelihood": float(self.null_log_likelihood),
            "mcfadden_r2": float(1.0 - self.log_likelihood / self.null_log_likelihood)
            if self.null_log_likelihood != 0 else np.nan,
            "llr": float(llr),
            "llr_p_value": float(stats.chi2.sf(llr, df_model)) if df_model > 0 else np.nan,
            "aic": float(2 * n_params - 2 * self.log_likelihood),
            "bic": float(n_params * np.log(self.n_obs) - 2 * self.log_likelihood),
            "n_obs": int(self.n_obs),
            "n_params": n_params,
            "n_iter": int(self.n_iter),
            "converged": bool(self.converged),
        }

    def predict_proba(self, prepared: pd.DataFrame) -> pd.DataFrame:
        """Location-type probabilities for prepared rows (reference column first)."""
        X = self.encoding.transform(prepared)
        probs = np.exp(_log_probs(X, self.coefficients.T))
        return pd.DataFrame(probs, index=prepared.index, columns=self.outcome_levels)


# ----------------------------
# Fitter
# ----------------------------

class MultinomialFitter:
    """
    Fits location_type ~ borough + hour.

    Reference outcome category and reference borough default to the most
    frequent level (ties -> lexicographically smallest). Both choices change
    every reported ratio, so they are stored on the FittedModel.
    """

    def __init__(
        self,
        reference_category: str | None = None,
        reference_borough: str | None = None,
        max_iter: int = DEFAULT_MAX_ITER,
        tol: float = DEFAULT_TOL,
        separation_bound: float = DEFAULT_SEPARATION_BOUND,
        verbose: bool = False,
    ):
        self.reference_category = reference_category
        self.reference_borough = reference_borough
        self.max_iter = max_iter
        self.tol = tol
        self.separation_bound = separation_bound
        self.verbose = verbose

    def fit(self, prepared) -> FittedModel:
        if not isinstance(prepared, pd.DataFrame):
            prepared = pd.DataFrame(list(prepared))
        if len(prepared) == 0:
            raise DegenerateOutcome("No prepared rows to fit.")

        for column in PREPARED_COLUMNS:
            if column not in prepared.columns:
                raise MissingColumnError(column, [column])
        null_counts = prepared[PREPARED_COLUMNS].isna().sum()
        if null_counts.any():
            bad = {c: int(n) for c, n in null_counts.items() if n}
            raise InvalidPreparedRow(
                f"Prepared rows must not contain nulls; found {bad}. Run DataPreparer.prepare first."
            )

        outcome = prepared["location_type"].astype(str)
        distinct = sorted(outcome.unique())
        if len(distinct) < 2:
            raise DegenerateOutcome(
                f"Need at least 2 distinct location types to fit, found {distinct}."
            )

        reference = self.reference_category
        if reference is None:
            reference = most_frequent_level(outcome)
        levels = ordered_levels(outcome, reference)

        X, feature_names, encoding = build_design_matrix(prepared, self.reference_borough)
        y = outcome.map({lvl: i for i, lvl in enumerate(levels)}).to_numpy(dtype=int)
        Y = np.eye(len(levels))[y][:, 1:]

        if self.verbose:
            print(f"Fitting multinomial logit: {len(y)} rows, {len(levels)} location types "
                  f"(reference: {reference}, reference borough: {encoding.reference})")

        B, ll, n_iter, converged = self._newton(X, y, Y)

        P = np.exp(_log_probs(X, B))[:, 1:]
        _, info = _score_and_information(X, Y, P)
        variances = np.diag(np.linalg.pinv(info))
        se = np.where(variances > 0, np.sqrt(np.clip(variances, 0, None)), np.nan)

        model = FittedModel(
            reference_category=reference,
            categories=levels[1:],
            feature_names=feature_names,
            coefficients=B.T.copy(),
            std_errors=se.reshape(len(levels) - 1, X.shape[1]),
            log_likelihood=ll,
            null_log_likelihood=null_log_likelihood(y, len(levels)),
            n_obs=len(y),
            n_iter=n_iter,
            converged=converged,
            separation_bound=self.separation_bound,
            encoding=encoding,
        )

        hits = np.argwhere(np.abs(model.coefficients) > self.separation_bound)
        if len(hits):
            flagged = [f"{levels[1 + i]}:{feature_names[a]}" for i, a in hits]
            warnings.warn(
                f"|coef| > {self.separation_bound} for {flagged}; possible separation.",
                PotentialSeparation,
                stacklevel=2,
            )

        if not converged:
            raise ConvergenceFailure(
                f"Multinomial logit did not converge after {n_iter} of {self.max_iter} iterations "
                f"(tol={self.tol}); last log-likelihood {ll:.6f}.",
                model=model,
            )

        if self.verbose:
            print(f"Converged after {n_iter} iterations (log-likelihood {ll:.4f})")
        return model

    def _newton(self, X, y, Y):
        p = X.shape[1]
        m = Y.shape[1]
        B = np.zeros((p, m))
        ll = _log_likelihood(X, y, B)

        for n_iter in range(1, self.max_iter + 1):
            P = np.exp(_log_probs(X, B))[:, 1:]
            score, info = _score_and_information(X, Y, P)
            step = np.linalg.lstsq(info, score, rcond=None)[0].reshape(m, p).T

            # Step-halving keeps the likelihood monotone
            t = 1.0
            for _ in range(MAX_STEP_HALVINGS):
                B_new = B + t * step
                ll_new = _log_likelihood(X, y, B_new)
                if ll_new >= ll:
                    break
                t /= 2.0
            else:
                # Line search stalled: only a vanishing score counts as converged
                if np.max(np.abs(score)) < self.tol:
                    return B, ll, n_iter, True
                if self.verbose:
                    print(f"  iter {n_iter}: line search stalled (max |score| {np.max(np.abs(score)):.2e})")
                return B, ll, n_iter, False

            change = abs(ll_new - ll)
            B, ll = B_new, ll_new
            if self.verbose:
                print(f"  iter {n_iter}: log-likelihood {ll:.6f} (change {change:.2e})")
            if change < self.tol:
                return B, ll, n_iter, True

        return B, ll, self.max_iter, False


def fit_location_model(prepared, **kwargs) -> FittedModel:
    """Shortcut for MultinomialFitter(**kwargs).fit(prepared)."""
    return MultinomialFitter(**kwargs).fit(prepared)
