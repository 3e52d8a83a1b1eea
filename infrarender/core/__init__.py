"""Core data models, errors and naming rules."""
