"""CLI module for smsrelay."""
