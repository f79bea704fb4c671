"""
Test package for the UCI driver.

This package contains unit tests for the request models and output scanner,
plus session tests that run against a scripted fake engine.
"""
