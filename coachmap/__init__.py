"""Narrative Integrity Map generation for coaching engagements."""
