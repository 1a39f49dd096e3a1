"""
NYC Shooting Incident Location Analysis
---------------------------------------
This package describes how the location type of NYPD shooting incidents
relates to borough and hour of day.

Module Hierarchy:
- `features`: Cleans raw incident records (missing-value markers, hour of day)
  and builds the borough/hour design matrix.
- `models`: Multinomial logistic regression of location type, with odds
  ratios, Wald inference and fit statistics.
- `exploration`: Descriptive tables by borough, hour and location type.
- `utils`: Exception types shared by every layer.
- `config`: Environment-driven settings (paths, reference levels, optimizer).

Architecture (2-Step Flow):
1. Preparation Layer (DataPreparer)
2. Modeling Layer (MultinomialFitter -> FittedModel)
"""
