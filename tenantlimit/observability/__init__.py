"""Tracing, in-memory metrics and structured JSON logging."""