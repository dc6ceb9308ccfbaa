"""Fleetcore command line interface."""
