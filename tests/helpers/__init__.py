"""Test helpers: in-memory fakes for the platform collaborators."""
