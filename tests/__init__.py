"""
AdherenceEngine Test Suite
==========================

This package contains all tests for the AdherenceEngine medication reminder service.

Test Structure:
- test_api/: API endpoint tests for FastAPI routes
- test_services/: Reminder lifecycle, dose scheduling, sweeping and analytics
- test_actions/: Background job engine
- test_tools/: Frequency parsing and notifications
- conftest.py: Shared pytest fixtures and a frozen clock

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_api/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "database"
"""
