"""Pure decision logic: classification, gap analysis, lifecycles and reporting.

Nothing in this package performs I/O. Services in aumos_risk_engine.core
read state through repositories, hand it to these components, and persist
what comes back.
"""
