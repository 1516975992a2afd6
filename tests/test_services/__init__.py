"""
Test Services Package
Tests for the stores, event generation and adherence services
"""
