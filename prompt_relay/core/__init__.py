"""
Core modules for the prompt relay.

This package contains the usage ledger, response cache, prompt
enrichment, input/output sanitization and the relay orchestrator.
"""
