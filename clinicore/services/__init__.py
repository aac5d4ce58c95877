"""Data-access services: table repositories and code resolution."""
