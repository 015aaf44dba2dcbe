"""
Test Scripts Package
Tests for the operational scripts
"""
