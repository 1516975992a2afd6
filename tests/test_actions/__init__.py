"""
Test Actions Package
Tests for take/skip reconciliation and alarm resolution
"""
