"""Clients for remote stores."""
