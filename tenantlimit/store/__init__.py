"""In-memory backends: limiter store, rule database, outbox and pub/sub."""