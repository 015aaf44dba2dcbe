"""
Test Services Package
Tests for reminder lifecycle, dose scheduling, missed-dose sweeping and analytics
"""
