"""Language server session layer: root discovery, sessions, routing, hooks and middleware."""
