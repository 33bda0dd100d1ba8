'''
CompStat Backend Test Suite

Test Modules:
-------------
- test_windows.py: window definitions, contiguity, leap days, DST
- test_statistics.py: percent change, Poisson z, classification, weekly
  trend, breakdowns, drilldown ordering, narrative
- test_soql.py: SoQL clause and query builders
- test_data_source.py: Socrata client and row normalisation
- test_aggregator.py: end-to-end aggregation against the fake adapter
- test_cache.py: response cache, single-flight, stale reads, health
- test_api.py: /compstat, /health and / routes
'''
