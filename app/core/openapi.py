"""
OpenAPI schema customizations for drf-spectacular.

Tag naming follows the pattern: [Area] - [Group]
Examples:
- Auth - Profile (own profile)
- Chats - Participants (group membership)
- Chats - Messages (history, sends, read receipts)
"""

TAG_DESCRIPTIONS = {
    "Auth": "Registration and login. Both return a bearer token and the caller's identity.",
    "Auth - Profile": "The caller's own profile: name, avatar and status.",
    "Contacts": "Per-user address book with display names and blocking.",
    "Chats": "Individual and group chats the caller participates in.",
    "Chats - Participants": "Group membership. Admins add and remove; anyone may leave.",
    "Chats - Messages": "History pages, sends, attachments and read receipts.",
    "Messages": "Edits, deletions and read receipts of single messages.",
    "Health": "Liveness of the service and its document store.",
}


def describe_tags(result, generator, request, public):
    """
    Postprocessing hook adding tag descriptions.

    Only tags used by at least one operation are listed, in the order above.
    """
    used = set()
    for methods in result.get("paths", {}).values():
        for operation in methods.values():
            if isinstance(operation, dict):
                used.update(operation.get("tags", []))

    result["tags"] = [
        {"name": name, "description": description}
        for name, description in TAG_DESCRIPTIONS.items()
        if name in used
    ]
    return result
