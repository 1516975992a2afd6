"""
Test Scripts Package
Tests for the maintenance and seeding scripts
"""
