import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def raw_incidents():
    """Raw rows shaped like the NYPD shooting-incident export."""
    return pd.DataFrame({
        "INCIDENT_KEY": ["1", "2", "3", "4", "5", "6", "7"],
        "BORO": ["BRONX", "BROOKLYN", "QUEENS", "BRONX", "MANHATTAN", "BROOKLYN", "QUEENS"],
        "OCCUR_TIME": ["23:59:00", "00:00:00", "13:45:10", "07:05:00", "18:30:00", "02:15:00", "11:00:00"],
        "LOC_CLASSFCTN_DESC": ["STREET", "(null)", "HOUSING", "", "STREET", "UNKNOWN", "COMMERCIAL"],
        "PERP_SEX": ["M", "U", "(null)", "F", "M", "M", ""],
        "VIC_SEX": ["M", "F", "M", "U", "M", "F", "M"],
    })


@pytest.fixture
def four_rows():
    return pd.DataFrame({
        "borough": ["Bronx", "Bronx", "Brooklyn", "Brooklyn"],
        "hour": [10, 22, 23, 1],
        "location_type": ["Street", "Housing", "Street", "Housing"],
    })


@pytest.fixture
def late_housing_rows():
    """Within each borough Housing happens later in the day than Street (not separable)."""
    rows = []
    for borough in ["Bronx", "Brooklyn"]:
        rows += [(borough, h, "Street") for h in (1, 6, 14)]
        rows += [(borough, h, "Housing") for h in (3, 17, 22)]
    return pd.DataFrame(rows, columns=["borough", "hour", "location_type"])


@pytest.fixture
def synthetic_prepared():
    """Seeded draw from a known 3-category multinomial logit."""
    rng = np.random.default_rng(42)
    n = 900
    boroughs = np.array(["BRONX", "BROOKLYN", "QUEENS"])
    borough = rng.choice(boroughs, size=n, p=[0.3, 0.45, 0.25])
    hour = rng.integers(0, 24, size=n)

    # Columns: STREET (reference), HOUSING, COMMERCIAL
    eta_housing = -0.8 + 0.6 * (borough == "BRONX") + 0.05 * hour
    eta_commercial = -1.2 - 0.4 * (borough == "QUEENS") - 0.03 * hour
    logits = np.column_stack([np.zeros(n), eta_housing, eta_commercial])
    probs = np.exp(logits) / np.exp(logits).sum(axis=1, keepdims=True)
    labels = np.array(["STREET", "HOUSING", "COMMERCIAL"])
    draws = np.array([rng.choice(3, p=row) for row in probs])

    return pd.DataFrame({"borough": borough, "hour": hour, "location_type": labels[draws]})
