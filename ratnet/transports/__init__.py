"""Transports; an in-process memory transport for tests."""