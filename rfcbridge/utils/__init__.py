"""Utility helpers for rfcbridge."""
