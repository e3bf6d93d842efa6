"""
Domain modules for the monster arena.

- battle: record, timer, resolver, completion pipeline, socket gateway
- rules: balance configuration provider
- notification: outbound bot-service notifications
- audit: audit event consumer
- shared: exceptions and service base class
"""
