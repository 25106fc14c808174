"""
Chat app for real-time messaging.

This app handles:
- Chats (individual and group) and their participants
- Message sending and history
- WebSocket real-time updates
- Read receipts, typing indicators and call signalling

Related apps:
    - authentication: identities of participants and senders
    - core: document store the chat collections live in

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for WebSocket handlers.
    See routing.py for WebSocket URL patterns.

Usage:
    from chat.services import ChatRegistry, MessageStore

    store = get_document_store()
    messages = MessageStore(store, ChatRegistry(store))

    chat = await messages.chats.create_individual(alice_id, bob_id)
    message = await messages.send(chat.id, alice_id, "Hello!")
"""
