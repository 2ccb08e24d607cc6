"""Solskin command-line interface."""
