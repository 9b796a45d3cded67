"""Shared helpers for Stillbytes."""
