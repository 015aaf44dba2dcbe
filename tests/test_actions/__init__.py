"""
Test Actions Package
Tests for the background job engine
"""
