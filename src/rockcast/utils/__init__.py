"""Utility helpers for Rockcast."""
