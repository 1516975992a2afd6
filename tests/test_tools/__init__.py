"""
Test Tools Package
Tests for the tools module (recurrence engine, notification scheduler)
"""
