"""
Test suite for electionbot

Contains:
- tests/unit/          : Unit tests for individual modules and command flows
"""
