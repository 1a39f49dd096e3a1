"""
MISSION: The Feature Layer.
Turns raw NYPD shooting-incident records into model-ready rows:
borough, hour of day and location type. Missing-value markers are
normalized to real nulls before anything gets filtered.
"""
from datetime import datetime, time, timedelta

import pandas as pd

from shooting_analysis.utils.errors import InvalidTimeFormat, MissingColumnError

# Literal marker the NYPD export uses for a missing location / sex value
LOCATION_SENTINEL = "(null)"

MISSING_MARKERS = (LOCATION_SENTINEL, "(NULL)", "NULL", "UNKNOWN", "NONE", "")
SEX_MISSING_MARKERS = (LOCATION_SENTINEL, "NULL", "U", "UNKNOWN", "")

TIME_FORMATS = ("%H:%M:%S", "%H:%M")

# Target name -> possible source names (first match wins, case-insensitive)
COLUMN_MAPPING = {
    "borough": ["BORO", "Borough", "borough"],
    "time_of_day": ["OCCUR_TIME", "time_of_day"],
    "location_type": ["LOC_CLASSFCTN_DESC", "location_type"],
}
OPTIONAL_COLUMN_MAPPING = {
    "perp_sex": ["PERP_SEX", "perp_sex"],
    "vic_sex": ["VIC_SEX", "vic_sex"],
}

PREPARED_COLUMNS = ["borough", "hour", "location_type"]


def parse_hour(value, row=None) -> int:
    """
    Hour component (0-23) of a time-of-day value.
    Accepts "HH:MM:SS" / "HH:MM" strings, time, datetime / pd.Timestamp,
    and timedelta / pd.Timedelta offsets from midnight in [0, 24h).
    """
    if value is None or value is pd.NaT:
        raise InvalidTimeFormat(value, row)
    # pd.Timestamp subclasses datetime, pd.Timedelta subclasses timedelta
    if isinstance(value, (datetime, time)):
        return int(value.hour)
    if isinstance(value, timedelta):
        if timedelta(0) <= value < timedelta(hours=24):
            return int(value.total_seconds() // 3600)
        raise InvalidTimeFormat(value, row)
    if isinstance(value, str):
        text = value.strip()
        for fmt in TIME_FORMATS:
            try:
                return datetime.strptime(text, fmt).hour
            except ValueError:
                continue
    raise InvalidTimeFormat(value, row)


def normalize_missing(series: pd.Series, markers=MISSING_MARKERS) -> pd.Series:
    """Replace textual missing markers with pd.NA (case-insensitive, whitespace stripped)."""
    text = series.astype("string").str.strip()
    upper_markers = {m.upper() for m in markers}
    is_marker = text.str.upper().isin(upper_markers).fillna(False).astype(bool)
    return text.mask(is_marker | text.isna())


def _resolve_column(columns, aliases):
    lookup = {str(c).lower(): c for c in columns}
    return next((lookup[a.lower()] for a in aliases if a.lower() in lookup), None)


class DataPreparer:
    """
    Filters incidents with a known location, derives the hour feature and
    keeps (borough, hour, location_type). Never mutates its input.

    Unparsable times abort the whole batch with InvalidTimeFormat.
    """

    def __init__(self, location_markers=MISSING_MARKERS, sex_markers=SEX_MISSING_MARKERS):
        self.location_markers = tuple(location_markers)
        self.sex_markers = tuple(sex_markers)

    def normalize(self, raw) -> pd.DataFrame:
        """Canonical column names with every missing marker turned into a real null."""
        if isinstance(raw, pd.DataFrame):
            df = raw
        else:
            records = list(raw)
            # No records means no columns to resolve
            df = pd.DataFrame(records) if records else pd.DataFrame(
                {target: pd.Series(dtype=object) for target in COLUMN_MAPPING}
            )

        out = pd.DataFrame(index=df.index)
        for target, sources in COLUMN_MAPPING.items():
            found = _resolve_column(df.columns, sources)
            if found is None:
                raise MissingColumnError(target, sources)
            out[target] = df[found]

        for target, sources in OPTIONAL_COLUMN_MAPPING.items():
            found = _resolve_column(df.columns, sources)
            if found is not None:
                out[target] = normalize_missing(df[found], self.sex_markers)

        out["borough"] = normalize_missing(out["borough"], self.location_markers)
        out["location_type"] = normalize_missing(out["location_type"], self.location_markers)
        return out

    def prepare_with_report(self, raw) -> tuple[pd.DataFrame, dict]:
        """
        Returns:
          (prepared, report) where prepared has columns borough, hour, location_type
        """
        df = self.normalize(raw)
        n_input = len(df)

        known_location = df["location_type"].notna()
        n_unknown_location = int((~known_location).sum())
        df = df[known_location]

        known_borough = df["borough"].notna()
        n_missing_borough = int((~known_borough).sum())
        df = df[known_borough]

        hours = [parse_hour(value, row) for row, value in df["time_of_day"].items()]

        prepared = pd.DataFrame({
            "borough": df["borough"].astype(str).to_numpy(dtype=object),
            "hour": pd.Series(hours, dtype="int64").to_numpy(),
            "location_type": df["location_type"].astype(str).to_numpy(dtype=object),
        }, columns=PREPARED_COLUMNS)

        report = {
            "n_rows_input": n_input,
            "n_dropped_unknown_location": n_unknown_location,
            "n_dropped_missing_borough": n_missing_borough,
            "n_rows_final": int(len(prepared)),
            "location_sentinels": list(self.location_markers),
        }
        for sex_col in OPTIONAL_COLUMN_MAPPING:
            if sex_col in df.columns:
                report[f"n_missing_{sex_col}"] = int(df[sex_col].isna().sum())

        return prepared, report

    def prepare(self, raw) -> pd.DataFrame:
        prepared, _ = self.prepare_with_report(raw)
        return prepared


def prepare_incidents(raw) -> pd.DataFrame:
    """Shortcut for DataPreparer().prepare(raw)."""
    return DataPreparer().prepare(raw)
