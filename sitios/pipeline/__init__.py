"""Publish pipeline: render, storage reconciliation, DNS and their orchestration."""
