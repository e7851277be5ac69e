"""
threshold_randomness.tests
--------------------------
Test package for the threshold randomness engine.

Notes:
- Secret keys here are tiny toy scalars; the local signer exists only so the
  tests can produce valid threshold signatures without a signing network.
- Pairing checks run in pure Python and take around a second each, so the
  end-to-end tests keep the number of fulfillments small.
"""
