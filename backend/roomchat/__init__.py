"""roomchat: single-room realtime chat backend.

The chat core (participant registry, message log, rate limiter and session
coordinator) lives in ``roomchat.chat``; ``roomchat.main`` wires it into a
FastAPI application.
"""
