"""Exam session service package."""
