"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the vault.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - A failed call changes nothing
2. reentrancy.py - Mutating calls never nest
3. risk.py - LTV ceiling, health factor ordering, liquidation bounds
4. solvency.py - Outstanding debt tracks synthetic supply; base asset is conserved

These tests use hypothesis for property-based testing.
"""
