"""Test run orchestration client."""
