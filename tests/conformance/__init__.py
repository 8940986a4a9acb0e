"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the housing ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Double-entry accounting and escrow invariants
2. atomicity.py - All-or-nothing operation semantics
3. idempotency.py - Duplicate execution handling
4. determinism.py - Replay reproduces the ledger
5. auction_properties.py - Bid ordering and refunds
6. booking_properties.py - Non-overlapping stays
7. dividend_properties.py - Dividends never exceed what was credited

These tests use hypothesis for property-based testing.
"""
