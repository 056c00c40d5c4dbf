"""Token lifecycle services: session management and refresh-token cleanup."""
