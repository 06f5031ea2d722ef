"""Clients for the external services the configuration core depends on."""
