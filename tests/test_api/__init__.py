"""
Test API Package
Endpoint tests for the medication reminder routes
"""
