"""Connectivity probe for a PostgreSQL database with Vault-sourced credentials."""

__version__ = "0.1.0"
