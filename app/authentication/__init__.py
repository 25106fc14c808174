"""
Authentication application.

Key components:
    - Identity: account document type (documents.py)
    - IdentityDirectory: lookup by id / email / virtual number, presence
    - AccountService: register, login, profile management
    - IdentityJWTAuthentication: DRF bearer token authentication

Usage:
    from authentication.services import AccountService, IdentityDirectory
"""
