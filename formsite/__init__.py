"""
Backend package for the site API.

This package provides a FastAPI application for the contact form, training
submissions, editable site content and file uploads, with records kept in
SQLite, Postgres or a flat JSON file.
"""
