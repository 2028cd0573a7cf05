"""Tutor Portal: client and page layer for the HCMUT tutoring platform."""
