"""Aggregate statistics from Twitch account data export archives."""
