"""Utility helpers for cbshell."""
