"""
Test Suite for VIO Agent
========================

Run with:
    pytest tests/ -v
"""
