"""Workflow application for the placement negotiation backend.

This package contains models, services, serializers, views and route
registrations for placement requests, negotiation rooms, their
conversation log and the unread activity derived from them.
"""
