"""Multi-node interop tests against the fake node binary."""
