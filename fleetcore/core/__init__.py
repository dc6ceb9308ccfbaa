"""Provisioning core: classification, selection, metadata, state, orchestration."""
