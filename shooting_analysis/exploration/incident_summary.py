"""
Descriptive tables behind the exploratory report: where and when incidents
happen, and whether the location mix differs across boroughs.
Works on prepared rows (borough, hour, location_type).
"""
import pandas as pd
from scipy import stats


def incidents_by_borough(prepared: pd.DataFrame) -> pd.DataFrame:
    counts = prepared["borough"].value_counts().rename_axis("borough").reset_index(name="incident_count")
    counts["share"] = counts["incident_count"] / counts["incident_count"].sum()
    return counts.sort_values(["incident_count", "borough"], ascending=[False, True]).reset_index(drop=True)


def incidents_by_hour(prepared: pd.DataFrame) -> pd.DataFrame:
    """Incident count for every hour 0-23 (hours with no incidents are 0)."""
    counts = prepared["hour"].value_counts().reindex(range(24), fill_value=0)
    return counts.rename_axis("hour").reset_index(name="incident_count")


def location_mix_by_borough(prepared: pd.DataFrame, normalize: bool = True) -> pd.DataFrame:
    """Borough x location_type crosstab; rows sum to 1 when normalize=True."""
    return pd.crosstab(prepared["borough"], prepared["location_type"], normalize="index" if normalize else False)


def borough_location_independence(prepared: pd.DataFrame, alpha: float = 0.05) -> dict:
    """
    Chi-square test of independence between borough and location type.
    A significant result means the location mix is borough-dependent.
    """
    table = pd.crosstab(prepared["borough"], prepared["location_type"])
    chi2, p_value, dof, _ = stats.chi2_contingency(table)
    n = int(table.to_numpy().sum())
    k = min(table.shape) - 1
    cramers_v = (chi2 / (n * k)) ** 0.5 if n > 0 and k > 0 else float("nan")
    return {
        "chi2": float(chi2),
        "p_value": float(p_value),
        "dof": int(dof),
        "cramers_v": float(cramers_v),
        "significant": bool(p_value < alpha),
    }
