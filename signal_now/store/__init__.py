"""Persistence for snapshots, profiles and watchlists."""
