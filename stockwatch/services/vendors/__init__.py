"""Vendors service."""
