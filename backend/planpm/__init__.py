"""Recurring maintenance schedule engine for laboratory instruments."""
