"""
Identity components for the user service.

This package provides:
- Password hashing and verification
- JWT access tokens and opaque refresh tokens
- User registration, login and profile management
- Role assignment against the seeded reference roles
"""
