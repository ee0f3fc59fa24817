"""Prompt templates for the interviewer."""
