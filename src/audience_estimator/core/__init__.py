"""
Core estimation layer.

This package contains:
- predicates: the closed set of segment predicates every rule compiles to
- rules: per-taxonomy rule table and row matching
- classifier: union vs. intersection policy per taxonomy
- catalog: the versioned filter catalog and estimation context
- resolver: filter id -> (taxonomy, predicate) resolution
- aggregator: per-state match percentage
- composer: population scaling and state breakdown
- estimator: the public estimate() entry point
- data_loader: load the state/taxonomy/segment table
- validation: load-time checks of the table
- diagnostics: per-filter data coverage report
"""
