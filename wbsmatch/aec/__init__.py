"""Clients and helpers for the AEC Data Model service."""
