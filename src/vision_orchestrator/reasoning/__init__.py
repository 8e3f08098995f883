"""Reasoning layer: provider adapters, invocation, free chain and orchestration."""
