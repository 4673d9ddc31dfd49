"""
Shared Layer - Cross-Cutting Concerns
Configuration, errors, counter store, security, events and logging
"""
