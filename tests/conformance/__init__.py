"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending market.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - Failed operations change nothing
2. solvency.py - Reserve totals reconcile with positions and pool cash
3. determinism.py - Reproducible behavior
4. temporal.py - Index monotonicity, time and event ordering

These tests use hypothesis to drive random operation sequences
(see tests/scenarios.py).
"""
