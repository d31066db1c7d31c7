"""Collaborator stores and the classifier endpoint."""
