"""featuregate test suite.

Test organization:
- services/: gates, targets, features, registry and storage adapters
- unit/: settings, errors, metrics and the admin command line
"""
