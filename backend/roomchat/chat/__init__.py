"""Chat core and transports.

Components:
    - ParticipantRegistry: active participants keyed by connection id
    - MessageLog: bounded FIFO of recent messages
    - SlidingWindowRateLimiter: per-connection send quota
    - SessionCoordinator: join/send/disconnect state machine and fan-out
    - ConnectionHub: WebSocket outboxes (push transport)
    - PollingSessions: idle expiry for HTTP-polling clients
"""
