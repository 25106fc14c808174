"""
Contacts application.

Per-user address book entries pointing at identities, with block / unblock.

Usage:
    from contacts.services import ContactBook
"""
