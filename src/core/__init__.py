"""
Core business logic for direct media uploads.

This module is framework-agnostic - it doesn't import FastAPI, Redis,
or any HTTP client. This separation means we can test the upload
protocol and state machine in isolation and swap infrastructure if needed.
"""
